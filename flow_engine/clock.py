"""HH:MM helpers. Times are fixed-width 24h strings so they also sort lexically."""
import re

HHMM_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def is_hhmm(value: str) -> bool:
    return bool(value) and HHMM_RE.match(value) is not None


def normalize_hhmm(value: str) -> str:
    """Accept ``9:05`` or ``09:05`` and return ``09:05``."""
    text = (value or "").strip()
    m = re.match(r"^(\d{1,2}):(\d{2})$", text)
    if not m:
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    out = f"{int(m.group(1)):02d}:{m.group(2)}"
    if not is_hhmm(out):
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    return out


def to_minutes(value: str) -> int:
    hh, mm = normalize_hhmm(value).split(":")
    return int(hh) * 60 + int(mm)


def from_minutes(total: int) -> str:
    total = max(0, min(total, 23 * 60 + 59))
    return f"{total // 60:02d}:{total % 60:02d}"


def overlaps(a_start: str, a_end: str, b_start: str, b_end: str) -> bool:
    """Half-open interval overlap on [start, end)."""
    return to_minutes(a_start) < to_minutes(b_end) and to_minutes(b_start) < to_minutes(a_end)
