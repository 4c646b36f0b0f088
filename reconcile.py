"""Optimistic entry updates with rollback.

Each (habit, date) cell moves through ``CLEAN -> PENDING -> CLEAN | ERROR``.
A click updates the local cache at once and bumps the cell's version. Only the
response carrying the latest version may settle the cell, so a late answer to
an earlier click never overwrites a newer optimistic value.
"""
import asyncio
import enum
import logging
import os
from datetime import date
from typing import Iterable, Optional

from backends import EntryBackend, EntryRecord, HabitInfo
from errors import HabitTrackerError
from grid import Window, build_grid


logger = logging.getLogger(__name__)

ERROR_CLEAR_SECONDS = float(os.getenv("ERROR_CLEAR_SECONDS", "3"))


class CellState(enum.Enum):
    CLEAN = "clean"
    PENDING = "pending"
    ERROR = "error"


def next_count(current: int, daily_goal: int) -> int:
    """Click rule: reset once the goal is reached, otherwise add one."""
    if current >= daily_goal:
        return 0
    return current + 1


class EntryReconciler:

    def __init__(self, backend: EntryBackend, error_clear_seconds: float = ERROR_CLEAR_SECONDS):
        self.backend = backend
        self.error_clear_seconds = error_clear_seconds
        self.errors: dict[int, str] = {}

        self._habits: dict[int, HabitInfo] = {}
        self._fetch_params: dict[int, dict] = {}
        self._entries: dict[int, dict[date, EntryRecord]] = {}
        self._confirmed: dict[tuple[int, date], Optional[EntryRecord]] = {}
        self._versions: dict[tuple[int, date], int] = {}
        self._states: dict[tuple[int, date], CellState] = {}
        self._tasks: set[asyncio.Task] = set()
        self._error_timers: dict[int, asyncio.TimerHandle] = {}

    # -- cache --

    def load(self, habit: HabitInfo, entries: Iterable[EntryRecord], **fetch_params):
        """Seed the cache for a habit; ``fetch_params`` are reused by ``refresh``."""
        self._habits[habit.id] = habit
        self._fetch_params[habit.id] = fetch_params
        self._entries[habit.id] = {}
        self._merge(habit.id, entries)

    def _merge(self, habit_id: int, entries: Iterable[EntryRecord]):
        cache = self._entries.setdefault(habit_id, {})
        fresh = {entry.date: entry for entry in entries}
        for day in set(cache) | set(fresh):
            key = (habit_id, day)
            if self._states.get(key) is CellState.PENDING:
                continue
            entry = fresh.get(day)
            self._confirmed[key] = entry
            if entry is None:
                cache.pop(day, None)
            else:
                cache[day] = entry
        # fresh server data settles any cell a failed write left in ERROR
        for key, state in list(self._states.items()):
            if key[0] == habit_id and state is CellState.ERROR:
                self._states[key] = CellState.CLEAN

    async def refresh(self, habit_id: int):
        entries = await self.backend.get_entries(habit_id, **self._fetch_params.get(habit_id, {}))
        self._merge(habit_id, entries)

    def habit(self, habit_id: int) -> HabitInfo:
        try:
            return self._habits[habit_id]
        except KeyError:
            raise ValueError(f"habit {habit_id} is not loaded") from None

    def entries(self, habit_id: int) -> list[EntryRecord]:
        return sorted(self._entries.get(habit_id, {}).values(), key=lambda e: e.date)

    def count_for(self, habit_id: int, day: date) -> int:
        entry = self._entries.get(habit_id, {}).get(day)
        return entry.count if entry is not None else 0

    def state_for(self, habit_id: int, day: date) -> CellState:
        return self._states.get((habit_id, day), CellState.CLEAN)

    def grid(self, habit_id: int, window: Window, today: Optional[date] = None):
        habit = self.habit(habit_id)
        return build_grid(self._entries.get(habit_id, {}).values(), habit.daily_goal, window, today)

    # -- mutations --

    def record_entry(self, habit_id: int, day: date, current_count: Optional[int] = None) -> int:
        """Apply a cell click and return the new count.

        The increment chains off the cached optimistic count; ``current_count``
        is only consulted for a day the cache has never seen.
        """
        habit = self.habit(habit_id)
        cached = self._entries.get(habit_id, {}).get(day)
        if cached is not None:
            current = cached.count
        else:
            current = current_count or 0
        new_count = next_count(current, habit.daily_goal)
        self._apply(habit_id, day, new_count)
        return new_count

    def increment_today(self, habit_id: int, today: Optional[date] = None) -> int:
        return self.record_entry(habit_id, today or date.today())

    def upsert(self, habit_id: int, day: date, count: int) -> int:
        if count < 0:
            raise ValueError("count must be non-negative")
        self.habit(habit_id)
        self._apply(habit_id, day, count)
        return count

    def _apply(self, habit_id: int, day: date, count: int):
        loop = asyncio.get_running_loop()
        key = (habit_id, day)
        self.clear_error(habit_id)

        cache = self._entries.setdefault(habit_id, {})
        self._confirmed.setdefault(key, cache.get(day))
        previous = cache.get(day)
        cache[day] = EntryRecord(
            date=day,
            count=count,
            id=previous.id if previous is not None else None,
            habit_id=habit_id,
        )

        version = self._versions.get(key, 0) + 1
        self._versions[key] = version
        self._states[key] = CellState.PENDING

        task = loop.create_task(self._commit(habit_id, day, count, version))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _commit(self, habit_id: int, day: date, count: int, version: int):
        key = (habit_id, day)
        try:
            entry = await self.backend.upsert_entry(habit_id, day, count)
        except HabitTrackerError as exc:
            if self._versions.get(key) != version:
                logger.debug("Ignoring stale failure for habit %s on %s (v%s)", habit_id, day, version)
                return
            logger.warning("Write for habit %s on %s failed, rolling back: %s", habit_id, day, exc)
            self._rollback(key)
            self._set_error(habit_id, f"Failed to update: {exc}")
            try:
                await self.refresh(habit_id)
            except HabitTrackerError:
                logger.exception("Re-fetch of habit %s after failed write also failed", habit_id)
            return

        if self._versions.get(key) != version:
            logger.debug("Ignoring stale response for habit %s on %s (v%s)", habit_id, day, version)
            return
        self._confirmed[key] = entry
        self._entries.setdefault(habit_id, {})[day] = entry
        self._states[key] = CellState.CLEAN

    def _rollback(self, key: tuple[int, date]):
        habit_id, day = key
        cache = self._entries.setdefault(habit_id, {})
        confirmed = self._confirmed.get(key)
        if confirmed is None:
            cache.pop(day, None)
        else:
            cache[day] = confirmed
        self._states[key] = CellState.ERROR

    # -- transient errors --

    def _set_error(self, habit_id: int, message: str):
        self.clear_error(habit_id)
        self.errors[habit_id] = message
        loop = asyncio.get_running_loop()
        self._error_timers[habit_id] = loop.call_later(self.error_clear_seconds, self._expire_error, habit_id)

    def _expire_error(self, habit_id: int):
        self._error_timers.pop(habit_id, None)
        self.errors.pop(habit_id, None)

    def clear_error(self, habit_id: int):
        timer = self._error_timers.pop(habit_id, None)
        if timer is not None:
            timer.cancel()
        self.errors.pop(habit_id, None)

    async def wait_idle(self):
        """Wait until every in-flight write (and its follow-up) has settled."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))
