"""Week-aligned date grids for contribution heatmaps.

A grid is a tuple of weeks. Each week is a tuple of seven slots running
Sunday to Saturday. Slots before the window start or after its end are
``None``, so the first slot of the first week is always a Sunday and the last
week is always complete.
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from functools import lru_cache
from typing import Iterable, Optional, Union


DAYS_PER_WEEK = 7
DAY_LABELS = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")


@dataclass(frozen=True)
class RollingWindow:
    days: int = 30

    def __post_init__(self):
        if self.days < 1:
            raise ValueError("days must be a positive integer")


@dataclass(frozen=True)
class YearWindow:
    year: int


Window = Union[RollingWindow, YearWindow]


@dataclass(frozen=True)
class DayCell:
    date: date
    count: int
    intensity: float
    is_today: bool = False


Week = tuple[Optional[DayCell], ...]


def intensity(count: int, daily_goal: int) -> float:
    if daily_goal <= 0:
        raise ValueError("daily_goal must be a positive integer")
    return min(count / daily_goal, 1.0)


def _sunday_index(day: date) -> int:
    # date.weekday() is Monday=0; the grid is Sunday-first
    return (day.weekday() + 1) % DAYS_PER_WEEK


def window_bounds(window: Window, today: date) -> tuple[date, date]:
    """First and last calendar day inside the window, inclusive."""
    if isinstance(window, RollingWindow):
        return today - timedelta(days=window.days - 1), today
    if isinstance(window, YearWindow):
        return date(window.year, 1, 1), date(window.year, 12, 31)
    raise TypeError(f"unsupported window: {window!r}")


def window_caption(window: Window) -> str:
    if isinstance(window, RollingWindow):
        return f"Last {window.days} days"
    return str(window.year)


def _as_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def _normalize_entries(entries) -> tuple[tuple[date, int], ...]:
    counts: dict[date, int] = {}
    for entry in entries:
        if isinstance(entry, (tuple, list)):
            day, count = entry
        else:
            day, count = entry.date, entry.count
        # later entries for the same day win
        counts[_as_date(day)] = count
    return tuple(sorted(counts.items()))


def build_grid(entries: Iterable, daily_goal: int, window: Window,
               today: Optional[date] = None) -> tuple[Week, ...]:
    """Lay out entries as week rows of day cells.

    ``entries`` holds ``(date, count)`` pairs or objects with ``date`` and
    ``count`` attributes. ``today`` defaults to the local calendar date.
    """
    if daily_goal <= 0:
        raise ValueError("daily_goal must be a positive integer")
    if today is None:
        today = date.today()
    return _build_grid(_normalize_entries(entries), daily_goal, window, _as_date(today))


@lru_cache(maxsize=256)
def _build_grid(entries: tuple[tuple[date, int], ...], daily_goal: int,
                window: Window, today: date) -> tuple[Week, ...]:
    counts = dict(entries)
    start, end = window_bounds(window, today)
    mark_today = isinstance(window, YearWindow)

    grid_start = start - timedelta(days=_sunday_index(start))
    grid_end = end + timedelta(days=DAYS_PER_WEEK - 1 - _sunday_index(end))

    slots: list[Optional[DayCell]] = []
    day = grid_start
    while day <= grid_end:
        if start <= day <= end:
            count = counts.get(day, 0)
            slots.append(DayCell(
                date=day,
                count=count,
                intensity=intensity(count, daily_goal),
                is_today=mark_today and day == today,
            ))
        else:
            slots.append(None)
        day += timedelta(days=1)

    return tuple(
        tuple(slots[i:i + DAYS_PER_WEEK])
        for i in range(0, len(slots), DAYS_PER_WEEK)
    )


def iter_cells(weeks: Iterable[Week]):
    """Yield the in-window cells of a grid in date order."""
    for week in weeks:
        for cell in week:
            if cell is not None:
                yield cell
