"""Output schemas handed to the generator alongside each prompt."""
from typing import Any, Dict


STOP_REQUIRED = [
    "id",
    "name",
    "startTime",
    "endTime",
    "authenticityScore",
    "instagramScore",
    "tags",
    "estimatedCost",
]

ITINERARY_REQUIRED = ["stops", "title", "totalAuthenticityScore", "totalInstagramScore"]


def stop_schema() -> Dict[str, Any]:
    return {
        "type": "OBJECT",
        "properties": {
            "id": {"type": "STRING"},
            "name": {"type": "STRING"},
            "description": {"type": "STRING"},
            "startTime": {"type": "STRING", "description": "HH:MM 24h format"},
            "endTime": {"type": "STRING", "description": "HH:MM 24h format"},
            "durationMinutes": {"type": "INTEGER"},
            "type": {"type": "STRING", "enum": ["FOOD", "SIGHTSEEING", "ACTIVITY", "TRANSIT", "COMMITMENT"]},
            "authenticityScore": {"type": "INTEGER", "description": "1-10"},
            "instagramScore": {"type": "INTEGER", "description": "1-10"},
            "isFixed": {"type": "BOOLEAN", "description": "True if this matches a user commitment"},
            "estimatedCost": {"type": "STRING", "description": "Cost in local currency or USD, e.g. '$20' or 'Free'"},
            "bestPhotoSpot": {"type": "STRING", "description": "Where/what to photograph here"},
            "localTip": {"type": "STRING", "description": "Insider advice a local would give"},
            "whyThisSpot": {"type": "STRING", "description": "How this stop matches the requested vibe"},
            "crowdLevel": {"type": "STRING", "enum": ["Low", "Moderate", "Busy", "Crushed"]},
            "travelToNext": {
                "type": "OBJECT",
                "description": "Travel to the NEXT stop in the list.",
                "properties": {
                    "mode": {"type": "STRING", "enum": ["Walking", "Transit", "Taxi"]},
                    "duration": {"type": "STRING", "description": "e.g. '15 min'"},
                },
            },
            "location": {
                "type": "OBJECT",
                "properties": {
                    "lat": {"type": "NUMBER"},
                    "lng": {"type": "NUMBER"},
                    "address": {"type": "STRING"},
                },
            },
            "dietaryNotes": {"type": "STRING"},
            "tags": {"type": "ARRAY", "items": {"type": "STRING"}},
        },
        "required": list(STOP_REQUIRED),
    }


def itinerary_schema() -> Dict[str, Any]:
    return {
        "type": "OBJECT",
        "properties": {
            "id": {"type": "STRING"},
            "title": {"type": "STRING"},
            "stops": {"type": "ARRAY", "items": stop_schema()},
            "totalAuthenticityScore": {"type": "INTEGER", "description": "0-100"},
            "totalInstagramScore": {"type": "INTEGER", "description": "0-100"},
            "summary": {"type": "STRING"},
        },
        "required": list(ITINERARY_REQUIRED),
    }
