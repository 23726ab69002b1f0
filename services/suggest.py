"""
Turn a free-text request such as "can I book badmintn tmrw at 6pm" into a
booking suggestion: facility, court, date and the nearest free hour.
"""
import logging
import re
import unicodedata
from dataclasses import asdict, dataclass
from datetime import date, datetime, time
from typing import List, Optional

import dateparser
from rapidfuzz import fuzz, process

from models.facility import Facility
from services.availability import active_courts, bookings_touching_day, compute_free_hours, facility_hours
from utils.clock import local_today, to_local, utcnow

logger = logging.getLogger(__name__)

# rapidfuzz scores run 0..100, 100 is identical
MATCH_THRESHOLD = 50

# whole-word corrections, applied longest phrase first
TYPO_RULES = {
    # intent
    "bok": "book", "boook": "book", "bookk": "book", "buk": "book", "bokk": "book",
    "reserve": "book", "reservation": "book", "reserver": "book",
    "sched": "schedule", "schedual": "schedule", "scheduel": "schedule",
    "make a booking": "book", "make booking": "book", "help me book": "book",
    "availablity": "availability", "avalibility": "availability",
    "available": "availability", "free slot": "availability",
    "time slot": "availability", "slot": "availability",
    # durations
    "1hour": "1 hour", "onehour": "1 hour", "1 hr": "1 hour", "1hrs": "1 hour",
    "one hr": "1 hour", "one hour": "1 hour",
    "2hour": "2 hours", "twohour": "2 hours", "2 hr": "2 hours", "2hrs": "2 hours",
    "two hr": "2 hours", "two hours": "2 hours",
    # days
    "tmr": "tomorrow", "tmrw": "tomorrow", "tommorow": "tomorrow",
    "tomorow": "tomorrow", "tomorroww": "tomorrow",
    "todai": "today", "tody": "today", "toady": "today",
    # sports
    "tenis": "tennis", "tnnis": "tennis", "tennis court": "tennis",
    "badminto": "badminton", "badmintion": "badminton", "badminton court": "badminton",
    "basket ball": "basketball", "baskteball": "basketball", "basketbol": "basketball",
    "basketball court": "basketball",
    "futsall": "futsal", "fut sall": "futsal", "futsel": "futsal",
    "footbal": "football", "soccer": "football", "football field": "football",
}

_TYPO_PATTERNS = [
    (re.compile(rf"(?<!\S){re.escape(wrong)}(?!\S)"), right)
    for wrong, right in sorted(TYPO_RULES.items(), key=lambda item: len(item[0]), reverse=True)
]

STOP_WORDS = {
    "what", "which", "when", "where", "how", "can", "could", "you", "i", "me",
    "my", "please", "book", "booking", "reserve", "schedule", "time", "times",
    "slot", "slots", "available", "availability", "free", "tomorrow", "today",
    "tonight", "morning", "afternoon", "evening", "at", "on", "for", "to",
    "the", "a", "an", "this", "that", "there", "any", "court", "courts",
    "next", "want", "play", "pm", "am", "hour", "hours",
}

TIME_PATTERNS = [
    re.compile(r"\b(\d{1,2}(?::\d{2})?\s*(?:am|pm))\b", re.IGNORECASE),
    re.compile(r"\b(\d{1,2}:\d{2})\b"),
    re.compile(r"\b(noon|midnight)\b", re.IGNORECASE),
]

DATE_PATTERNS = [
    re.compile(r"\b(today|tonight)\b", re.IGNORECASE),
    re.compile(r"\b(tomorrow)\b", re.IGNORECASE),
    re.compile(r"\b((?:next|this)\s+(?:monday|tuesday|wednesday|thursday|friday|saturday|sunday))\b", re.IGNORECASE),
    re.compile(r"\b(in\s+\d+\s+days?)\b", re.IGNORECASE),
    re.compile(r"\b(\d{1,2}\s+(?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*)\b", re.IGNORECASE),
    re.compile(r"\b((?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\s+\d{1,2})\b", re.IGNORECASE),
]

DURATION_PATTERN = re.compile(r"\b([12])\s*(?:h|hrs?|hours?)\b")

_DATE_ALIASES = {"tonight": "today"}


def normalize_text(text: str) -> str:
    """Lowercase, strip accents and punctuation, then fix common typos."""
    s = unicodedata.normalize("NFKD", (text or "").lower())
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    s = re.sub(r"[_/\\|]+", " ", s)
    s = re.sub(r"[^a-z0-9:\s]", " ", s)
    s = re.sub(r"\s+", " ", s).strip()
    for pattern, right in _TYPO_PATTERNS:
        s = pattern.sub(right, s)
    return re.sub(r"\s+", " ", s).strip()


@dataclass
class BookingSuggestion:
    facility_id: Optional[int]
    facility_name: str
    court_id: Optional[int]
    court_name: str
    date: str
    requested_time: Optional[str]
    suggested_time: str
    is_exact_match: bool
    duration_hours: int = 1
    reason: Optional[str] = None

    def to_dict(self):
        return asdict(self)


def extract_keywords(text: str) -> List[str]:
    tokens = normalize_text(text).split()
    keywords = [t for t in tokens if t not in STOP_WORDS and len(t) >= 3 and not any(ch.isdigit() for ch in t)]
    # everything filtered out: fall back to the raw tokens
    return keywords or tokens


def _words(facility) -> List[str]:
    return [w for w in re.split(r"[^a-z0-9]+", f"{facility.name} {facility.sport_type}".lower()) if w]


def find_best_matching_facility(text: str, facilities):
    if not text or not facilities:
        return None

    keywords = extract_keywords(text)
    if not keywords:
        return None

    best, best_score = None, (0.0, 0.0)
    for facility in facilities:
        words = _words(facility)
        per_keyword = []
        for keyword in keywords:
            hit = process.extractOne(keyword, words, scorer=fuzz.ratio)
            per_keyword.append(hit[1] if hit else 0.0)
        score = (max(per_keyword), sum(per_keyword))
        if score > best_score:
            best, best_score = facility, score

    if best_score[0] < MATCH_THRESHOLD:
        return None
    return best


def _relative_base(now: datetime) -> datetime:
    return to_local(now).replace(tzinfo=None)


def parse_requested_date(text: str, now: Optional[datetime] = None) -> Optional[date]:
    now = now or utcnow()
    text = normalize_text(text)
    for pattern in DATE_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        phrase = match.group(1).lower()
        phrase = _DATE_ALIASES.get(phrase, phrase)
        parsed = dateparser.parse(
            phrase,
            settings={
                "RELATIVE_BASE": _relative_base(now),
                "PREFER_DATES_FROM": "future",
                "RETURN_AS_TIMEZONE_AWARE": False,
            },
        )
        if parsed:
            return parsed.date()
    return None


def parse_requested_hour(text: str, day: date) -> Optional[int]:
    text = normalize_text(text)
    for pattern in TIME_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        parsed = dateparser.parse(
            match.group(1),
            settings={
                "RELATIVE_BASE": datetime.combine(day, time(12, 0)),
                "RETURN_AS_TIMEZONE_AWARE": False,
            },
        )
        if parsed:
            return parsed.hour
    return None


def parse_requested_duration(text: str) -> int:
    """1 or 2 hours; 1 when the text does not say."""
    match = DURATION_PATTERN.search(normalize_text(text))
    return int(match.group(1)) if match else 1


def _nearest(free_slots: List[str], hour: int) -> str:
    return min(free_slots, key=lambda s: abs(int(s[:2]) - hour))


def suggest_booking(text: str, day: Optional[date] = None, now: Optional[datetime] = None) -> BookingSuggestion:
    now = now or utcnow()
    day = day or parse_requested_date(text, now) or local_today(now)
    iso_day = day.isoformat()
    duration = parse_requested_duration(text)

    def _empty(reason, facility=None, court=None):
        return BookingSuggestion(
            facility_id=facility.id if facility else None,
            facility_name=facility.name if facility else "",
            court_id=court.id if court else None,
            court_name=court.name if court else "",
            date=iso_day,
            requested_time=None,
            suggested_time="",
            is_exact_match=False,
            duration_hours=duration,
            reason=reason,
        )

    facilities = Facility.query.filter_by(is_active=True).order_by(Facility.name.asc()).all()
    if not facilities:
        return _empty("There are no active facilities configured yet, ask an admin to add them first.")

    facility = find_best_matching_facility(text, facilities)
    if not facility:
        return _empty(
            'I could not match your question to any active facility, please mention the '
            'facility name clearly, for example "Badminton Hall" or "Futsal".'
        )

    courts = active_courts(facility.id)
    if not courts:
        return _empty(f'The facility "{facility.name}" does not have any active courts.', facility)

    court = courts[0]
    open_time, close_time = facility_hours(facility)
    bookings = [(b.start_time, b.end_time) for b in bookings_touching_day([court.id], day)]
    free_slots = compute_free_hours(open_time, close_time, day, bookings, now=now, duration_hours=duration)
    if not free_slots:
        return _empty(f'There are no free {duration} hour slots for "{facility.name}" on {iso_day}.', facility, court)

    requested_hour = parse_requested_hour(text, day)
    requested = f"{requested_hour:02d}:00" if requested_hour is not None else None

    if requested is None:
        suggested, exact = free_slots[0], False
    elif requested in free_slots:
        suggested, exact = requested, True
    else:
        suggested, exact = _nearest(free_slots, requested_hour), False

    logger.debug("Suggested %s at %s for %r", facility.name, suggested, text)
    return BookingSuggestion(
        facility_id=facility.id,
        facility_name=facility.name,
        court_id=court.id,
        court_name=court.name,
        date=iso_day,
        requested_time=requested,
        suggested_time=suggested,
        is_exact_match=exact,
        duration_hours=duration,
    )
