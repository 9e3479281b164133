"""
Relative time normalization.

Turns phrases such as "今天晚上十点", "周五下午", "tomorrow at 3pm" into
absolute local timestamps anchored to the caller's "now". Timestamps are
wall-clock values without a zone marker; nothing here converts to UTC.

All functions are pure and never raise for string input.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, List, NamedTuple, Optional, Tuple

LOCAL_FORMAT = "%Y-%m-%dT%H:%M:%S"
EVENT_DEFAULT_DURATION = timedelta(hours=1)

_ZONE_SUFFIX = re.compile(r"(?:Z|[+-]\d{2}:?\d{2})$", re.IGNORECASE)

_CN_DIGITS = {"零": 0, "〇": 0, "一": 1, "二": 2, "两": 2, "三": 3, "四": 4,
              "五": 5, "六": 6, "七": 7, "八": 8, "九": 9}
_CN_NUM = r"[零〇一二两三四五六七八九十]{1,3}"
_CN_HOUR = r"[二两]十[一二三四]?|十[一二三四五六七八九]?|[零〇一二两三四五六七八九]"

# An hour never starts inside a number or right after 周/星期/礼拜, except the
# clock that follows a weekday ("周五8点", "周二十点"). "早一点/晚一点" is not a clock.
_HOUR_START = (
    r"(?:(?<![\d零〇一二两三四五六七八九十周期拜快慢多少好大小高低差有])"
    r"|(?<=[周期拜][一二三四五六日天1-7]))"
    r"(?!(?<=[早晚])一\s*(?:点|时))"
)

_WEEKDAYS_CN = {"一": 0, "二": 1, "三": 2, "四": 3, "五": 4, "六": 5, "日": 6, "天": 6,
                "1": 0, "2": 1, "3": 2, "4": 3, "5": 4, "6": 5, "7": 6}
_WEEKDAYS_EN = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

# (pattern, day offset); longer phrases first
_DAY_ANCHORS: List[Tuple[str, int]] = [
    ("大后天", 3),
    ("后天", 2),
    ("明天", 1), ("明日", 1), ("明早", 1), ("明晚", 1),
    ("今天", 0), ("今日", 0), ("今早", 0), ("今晚", 0),
    ("day after tomorrow", 2),
    ("tomorrow", 1),
    ("today", 0), ("tonight", 0),
]

# (keyword, default hour, afternoon/evening clock)
_PERIODS: List[Tuple[str, int, bool]] = [
    ("凌晨", 1, False),
    ("早上", 9, False), ("早晨", 9, False), ("上午", 9, False),
    ("今早", 9, False), ("明早", 9, False),
    ("中午", 12, False),
    ("下午", 14, True),
    ("傍晚", 19, True), ("晚上", 19, True), ("今晚", 19, True),
    ("明晚", 19, True), ("夜里", 19, True),
    ("dawn", 1, False),
    ("morning", 9, False),
    ("afternoon", 14, True),
    ("noon", 12, False),
    ("evening", 19, True), ("tonight", 19, True),
]

_NEXT_WEEK_CN = re.compile(r"下(?:个)?(?:周|星期|礼拜)([一二三四五六日天1-7])")
_WEEKDAY_CN = re.compile(r"(?:这|本)?(?:周|星期|礼拜)([一二三四五六日天1-7])")
_WEEKDAY_EN = re.compile(
    r"\b(next\s+|this\s+)?(" + "|".join(_WEEKDAYS_EN) + r")\b", re.IGNORECASE
)
_ISO_DATE = re.compile(r"(?<!\d)(\d{4})[-/年](\d{1,2})[-/月](\d{1,2})日?")
_MONTH_DAY = re.compile(r"(\d{1,2}|" + _CN_NUM + r")月(\d{1,2}|" + _CN_NUM + r")[日号]")

_CLOCK_PATTERNS = [
    # 十点半 / 3点15 / 三点一刻 / 十点十分
    re.compile(
        _HOUR_START + r"(?P<h>\d{1,2}|" + _CN_HOUR + r")\s*(?:点|时(?![间候]))"
        r"(?:(?P<half>半)|(?P<q1>一刻)|(?P<q3>三刻)|(?P<m>\d{1,2})\s*分?|(?P<mc>" + _CN_NUM + r")\s*分)?"
    ),
    re.compile(
        r"\b(?P<h>\d{1,2})(?::(?P<m>\d{2}))?\s*(?P<ap>a\.?m\.?|p\.?m\.?)(?![a-z])",
        re.IGNORECASE,
    ),
    re.compile(r"\b(?P<h>\d{1,2})\s*o'?clock\b", re.IGNORECASE),
    re.compile(r"(?<![\d:])(?P<h>[01]?\d|2[0-3])[:：](?P<m>[0-5]\d)(?!\d)"),
    re.compile(r"\bat\s+(?P<h>\d{1,2})(?::(?P<m>\d{2}))?(?!\s*(?:[ap]\.?m|o'?clock|:))\b", re.IGNORECASE),
]
_RANGE_JOINER = re.compile(r"^\s*(?:到|至|-|~|～|—|to|until)\s*$", re.IGNORECASE)


class _Clock(NamedTuple):
    start: int
    end: int
    hour: int
    minute: int
    meridiem: Optional[str]


@dataclass(frozen=True)
class TimeResolution:
    due_date: Optional[datetime] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @property
    def is_empty(self) -> bool:
        return self.due_date is None and self.start_time is None and self.end_time is None


def strip_timezone(value: str) -> str:
    """Drop a trailing 'Z' or '+HH:MM' marker, keeping the clock time unchanged."""
    if not isinstance(value, str):
        return value
    return _ZONE_SUFFIX.sub("", value.strip())


def parse_local_timestamp(value: Any) -> Optional[datetime]:
    """Interpret value as a local wall-clock timestamp.

    Zone information is discarded rather than converted, so
    "2025-06-10T22:00:00Z" becomes 22:00 local.
    """
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str):
        return None
    text = strip_timezone(value)
    if not text:
        return None
    # fromisoformat rejects fractional seconds with other than 3/6 digits on older interpreters
    text = re.sub(r"(\.\d+)$", "", text.replace(" ", "T", 1))
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def format_local(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.strftime(LOCAL_FORMAT)


def _cn_to_int(token: str) -> Optional[int]:
    if token.isdigit():
        return int(token)
    if "十" in token:
        tens, _, ones = token.partition("十")
        value = (_CN_DIGITS.get(tens, 1) if tens else 1) * 10
        if ones:
            if ones not in _CN_DIGITS:
                return None
            value += _CN_DIGITS[ones]
        return value
    if len(token) == 1 and token in _CN_DIGITS:
        return _CN_DIGITS[token]
    return None


def _find_date(text: str, today: date) -> Optional[date]:
    lowered = text.lower()

    m = _ISO_DATE.search(text)
    if m:
        try:
            return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        except ValueError:
            pass

    m = _MONTH_DAY.search(text)
    if m:
        month, day = _cn_to_int(m.group(1)), _cn_to_int(m.group(2))
        if month and day:
            try:
                return date(today.year, month, day)
            except ValueError:
                pass

    m = _NEXT_WEEK_CN.search(text)
    if m:
        monday = today - timedelta(days=today.weekday())
        return monday + timedelta(days=7 + _WEEKDAYS_CN[m.group(1)])

    m = _WEEKDAY_CN.search(text)
    if m:
        return today + timedelta(days=(_WEEKDAYS_CN[m.group(1)] - today.weekday()) % 7)

    m = _WEEKDAY_EN.search(text)
    if m:
        target = _WEEKDAYS_EN.index(m.group(2).lower())
        if m.group(1) and m.group(1).strip().lower() == "next":
            monday = today - timedelta(days=today.weekday())
            return monday + timedelta(days=7 + target)
        return today + timedelta(days=(target - today.weekday()) % 7)

    for phrase, offset in _DAY_ANCHORS:
        if phrase in lowered:
            return today + timedelta(days=offset)
    return None


def _find_period(text: str) -> Optional[Tuple[int, bool, str]]:
    lowered = text.lower()
    for keyword, hour, late in _PERIODS:
        if keyword in lowered:
            return hour, late, keyword
    return None


def _find_clocks(text: str) -> List[_Clock]:
    found: List[_Clock] = []
    for pattern in _CLOCK_PATTERNS:
        for m in pattern.finditer(text):
            hour = _cn_to_int(m.group("h"))
            if hour is None or hour > 24:
                continue
            groups = m.groupdict()
            minute = 0
            if groups.get("half"):
                minute = 30
            elif groups.get("q1"):
                minute = 15
            elif groups.get("q3"):
                minute = 45
            elif groups.get("m"):
                minute = int(groups["m"])
            elif groups.get("mc"):
                minute = _cn_to_int(groups["mc"]) or 0
            if minute > 59:
                continue
            meridiem = groups.get("ap")
            if meridiem:
                meridiem = meridiem.lower().replace(".", "")
            found.append(_Clock(m.start(), m.end(), hour, minute, meridiem))

    found.sort(key=lambda c: (c.start, -(c.end - c.start)))
    result: List[_Clock] = []
    for clock in found:
        if result and clock.start < result[-1].end:
            continue
        result.append(clock)
    return result


def _apply_period(clock: _Clock, period: Optional[Tuple[int, bool, str]]) -> Tuple[int, int]:
    hour = clock.hour
    if clock.meridiem == "pm" and hour < 12:
        hour += 12
    elif clock.meridiem == "am" and hour == 12:
        hour = 0
    elif clock.meridiem is None and period is not None:
        _, late, keyword = period
        if late and hour < 12:
            hour += 12
        elif keyword in ("中午", "noon") and hour < 6:
            hour += 12
    return hour, clock.minute


def _at(day: date, hour: int, minute: int) -> datetime:
    # 24:00 rolls into the next day
    return datetime(day.year, day.month, day.day) + timedelta(hours=hour, minutes=minute)


def resolve_times(text: str, now: Optional[datetime] = None, item_type: str = "task") -> TimeResolution:
    """Resolve the time expressions in text into absolute local timestamps.

    Events get start/end (one hour when no end is given) and a due date equal
    to the start; every other type gets a due date. Returns an empty
    resolution when the text has no time expression at all.
    """
    if not isinstance(text, str) or not text.strip():
        return TimeResolution()
    now = (now or datetime.now()).replace(tzinfo=None)

    try:
        day = _find_date(text, now.date())
        period = _find_period(text)
        clocks = _find_clocks(text)
    except (ValueError, OverflowError):
        return TimeResolution()

    if day is None and period is None and not clocks:
        return TimeResolution()
    day = day or now.date()

    end: Optional[datetime] = None
    if clocks:
        hour, minute = _apply_period(clocks[0], period)
        if period and period[1] and clocks[0].meridiem is None and clocks[0].hour == 12:
            # 晚上12点 means midnight
            hour = 24
        start = _at(day, hour, minute)
        if len(clocks) > 1 and _RANGE_JOINER.match(text[clocks[0].end:clocks[1].start]):
            end_hour, end_minute = _apply_period(clocks[1], period)
            end = _at(day, end_hour, end_minute)
            if end <= start and end + timedelta(hours=12) > start:
                end += timedelta(hours=12)
            if end <= start:
                end = None
    elif period:
        start = _at(day, period[0], 0)
    else:
        start = _at(day, 0, 0)

    if item_type == "event":
        return TimeResolution(due_date=start, start_time=start, end_time=end or start + EVENT_DEFAULT_DURATION)
    return TimeResolution(due_date=start, start_time=start if end else None, end_time=end)


def normalize_time(text: str, now: Optional[datetime] = None) -> Optional[str]:
    """Resolve the first time point in text to 'YYYY-MM-DDTHH:MM:SS', or None."""
    resolution = resolve_times(text, now)
    return format_local(resolution.due_date or resolution.start_time)
