"""
Pydantic models for preferences, commitments and itineraries.

Wire names are camelCase to match the generator schema; attributes are snake_case.
"""
from enum import Enum
from typing import List, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .clock import normalize_hhmm, to_minutes


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class BudgetTier(str, Enum):
    ECONOMY = "ECONOMY"
    MODERATE = "MODERATE"
    LUXURY = "LUXURY"


class ActivityType(str, Enum):
    FOOD = "FOOD"
    SIGHTSEEING = "SIGHTSEEING"
    ACTIVITY = "ACTIVITY"
    TRANSIT = "TRANSIT"
    COMMITMENT = "COMMITMENT"


class CrowdLevel(str, Enum):
    LOW = "Low"
    MODERATE = "Moderate"
    BUSY = "Busy"
    CRUSHED = "Crushed"


class TravelMode(str, Enum):
    WALKING = "Walking"
    TRANSIT = "Transit"
    TAXI = "Taxi"


def new_id() -> str:
    return uuid.uuid4().hex[:12]


class Location(_WireModel):
    lat: float = 0.0
    lng: float = 0.0
    address: str = ""

    @property
    def is_resolved(self) -> bool:
        # (0, 0) is the "not yet resolved" sentinel, never a real position here.
        return not (self.lat == 0 and self.lng == 0)


class ResolvedLocation(_WireModel):
    name: str
    address: str
    lat: float = 0.0
    lng: float = 0.0

    @property
    def is_resolved(self) -> bool:
        return not (self.lat == 0 and self.lng == 0)

    @classmethod
    def sentinel(cls, query: str, address: Optional[str] = None) -> "ResolvedLocation":
        return cls(name=query, address=address or query, lat=0.0, lng=0.0)


class FixedCommitment(_WireModel):
    id: str = Field(default_factory=new_id)
    start_time: str
    end_time: str
    location: str
    description: str = "User Commitment"
    lat: Optional[float] = None
    lng: Optional[float] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _hhmm(cls, v: str) -> str:
        return normalize_hhmm(v)

    @model_validator(mode="after")
    def _window(self) -> "FixedCommitment":
        if to_minutes(self.end_time) < to_minutes(self.start_time):
            raise ValueError(f"Commitment ends ({self.end_time}) before it starts ({self.start_time})")
        return self

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None and not (self.lat == 0 and self.lng == 0)


class UserPreferences(_WireModel):
    vibe_score: int = Field(60, ge=0, le=100)
    vibe_description: str = ""
    dietary: List[str] = Field(default_factory=list)
    location: str = "New York, NY"
    budget: BudgetTier = BudgetTier.MODERATE
    trip_start_time: str = "09:00"
    trip_end_time: str = "22:00"
    fixed_commitments: List[FixedCommitment] = Field(default_factory=list)

    @field_validator("trip_start_time", "trip_end_time")
    @classmethod
    def _hhmm(cls, v: str) -> str:
        return normalize_hhmm(v)

    @field_validator("dietary")
    @classmethod
    def _dedupe_dietary(cls, v: List[str]) -> List[str]:
        seen: List[str] = []
        for tag in v:
            tag = tag.strip()
            if tag and tag not in seen:
                seen.append(tag)
        return seen

    @model_validator(mode="after")
    def _bounds_and_order(self) -> "UserPreferences":
        if to_minutes(self.trip_end_time) <= to_minutes(self.trip_start_time):
            raise ValueError("Trip end time must be after trip start time")
        self.fixed_commitments = sorted(self.fixed_commitments, key=lambda c: c.start_time)
        return self


class PlanContext(_WireModel):
    current_time: str = "09:00"
    # Only known when the caller reports a position.
    lat: Optional[float] = None
    lng: Optional[float] = None

    @field_validator("current_time")
    @classmethod
    def _hhmm(cls, v: str) -> str:
        return normalize_hhmm(v)


class TravelLeg(_WireModel):
    mode: TravelMode
    duration: str


class Stop(_WireModel):
    # Required: the generator must send these, no silent defaults.
    id: str
    name: str
    start_time: str
    end_time: str
    authenticity_score: int = Field(ge=1, le=10)
    instagram_score: int = Field(ge=1, le=10)
    tags: List[str]
    estimated_cost: str

    description: str = ""
    duration_minutes: Optional[int] = Field(default=None, ge=0)
    type: Optional[ActivityType] = None
    is_fixed: bool = False
    best_photo_spot: Optional[str] = None
    local_tip: Optional[str] = None
    why_this_spot: Optional[str] = None
    crowd_level: Optional[CrowdLevel] = None
    dietary_notes: Optional[str] = None
    location: Location = Field(default_factory=Location)
    travel_to_next: Optional[TravelLeg] = None

    @field_validator("id", "name")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be blank")
        return v.strip()

    @field_validator("start_time", "end_time")
    @classmethod
    def _hhmm(cls, v: str) -> str:
        return normalize_hhmm(v)

    @model_validator(mode="after")
    def _derive(self) -> "Stop":
        start, end = to_minutes(self.start_time), to_minutes(self.end_time)
        if end < start:
            raise ValueError(f"Stop '{self.name}' ends ({self.end_time}) before it starts ({self.start_time})")
        # The window is authoritative; a disagreeing duration is recomputed.
        if self.duration_minutes != end - start:
            self.duration_minutes = end - start
        if self.type is None:
            self.type = ActivityType.COMMITMENT if self.is_fixed else ActivityType.ACTIVITY
        return self

    @property
    def start_minutes(self) -> int:
        return to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return to_minutes(self.end_time)


class Itinerary(_WireModel):
    id: str = Field(default_factory=new_id)
    title: str
    stops: List[Stop]
    total_authenticity_score: int = Field(ge=0, le=100)
    total_instagram_score: int = Field(ge=0, le=100)
    summary: str = ""

    @model_validator(mode="after")
    def _chronological(self) -> "Itinerary":
        self.stops = sorted(self.stops, key=lambda s: (s.start_time, s.end_time))
        return self

    def find_stop(self, name: str) -> Optional[Stop]:
        wanted = name.strip().casefold()
        for stop in self.stops:
            if stop.name.casefold() == wanted:
                return stop
        return None

    @property
    def fixed_stops(self) -> List[Stop]:
        return [s for s in self.stops if s.is_fixed]

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
