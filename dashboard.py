"""One heatmap per active habit.

Entries load per habit in separate tasks, so a slow or failing habit leaves the
other panels usable. Panels read their counts from the shared
``EntryReconciler`` cache, which is also where clicks land.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from backends import EntryBackend, HabitInfo
from colors import legend, map_color
from errors import HabitTrackerError
from grid import DayCell, RollingWindow, Window, window_bounds, window_caption
from reconcile import EntryReconciler


logger = logging.getLogger(__name__)

EMPTY_MESSAGE = "No active habits yet. Create your first habit to start tracking!"


def fetch_params(window: Window, today: date) -> dict:
    """Entry query arguments covering the window."""
    if isinstance(window, RollingWindow):
        return {"since_days": window.days}
    start, end = window_bounds(window, today)
    return {"start": start, "end": end}


@dataclass
class HabitPanel:
    habit: HabitInfo
    caption: str
    loading: bool = True
    weeks: Optional[tuple] = None
    error: Optional[str] = None
    legend: list[str] = field(default_factory=list)

    def cell_color(self, cell: DayCell) -> str:
        return map_color(self.habit.color, cell.intensity)

    def tooltip(self, cell: DayCell) -> str:
        return f"{cell.date.isoformat()} - {cell.count} / {self.habit.daily_goal}"


class DashboardComposer:

    def __init__(self, backend: EntryBackend, reconciler: Optional[EntryReconciler] = None,
                 window: Optional[Window] = None, today: Optional[date] = None):
        self.backend = backend
        self.reconciler = reconciler or EntryReconciler(backend)
        self.window = window or RollingWindow(30)
        self.today = today
        # None until the habit list has been fetched
        self.habits: Optional[list[HabitInfo]] = None
        self._loaded: set[int] = set()
        self._load_errors: dict[int, str] = {}
        self._tasks: dict[int, asyncio.Task] = {}

    def _today(self) -> date:
        return self.today or date.today()

    def fetch_params(self) -> dict:
        return fetch_params(self.window, self._today())

    @property
    def loading(self) -> bool:
        return self.habits is None

    @property
    def is_empty(self) -> bool:
        return self.habits is not None and not self.habits

    async def load_habits(self) -> list[HabitInfo]:
        self.habits = await self.backend.list_active_habits()
        return self.habits

    def start_entries(self):
        """Start one entry fetch per habit without waiting for any of them."""
        for habit in self.habits or []:
            if habit.id not in self._tasks:
                self._tasks[habit.id] = asyncio.create_task(self._load_habit(habit))

    async def wait(self):
        if self._tasks:
            await asyncio.gather(*self._tasks.values())

    async def load(self) -> list[HabitPanel]:
        await self.load_habits()
        self.start_entries()
        await self.wait()
        return self.panels()

    async def _load_habit(self, habit: HabitInfo):
        params = self.fetch_params()
        try:
            entries = await self.backend.get_entries(habit.id, **params)
        except HabitTrackerError as exc:
            logger.warning("Could not load entries for habit %s: %s", habit.id, exc)
            self._load_errors[habit.id] = str(exc)
            return
        self.reconciler.load(habit, entries, **params)
        self._loaded.add(habit.id)

    def panels(self) -> list[HabitPanel]:
        caption = window_caption(self.window)
        panels = []
        for habit in self.habits or []:
            panel = HabitPanel(habit=habit, caption=caption, legend=legend(habit.color))
            if habit.id in self._loaded:
                panel.loading = False
                panel.weeks = self.reconciler.grid(habit.id, self.window, self._today())
                panel.error = self.reconciler.errors.get(habit.id)
            elif habit.id in self._load_errors:
                panel.loading = False
                panel.error = self._load_errors[habit.id]
            panels.append(panel)
        return panels

    def earliest_year(self) -> int:
        """Oldest entry year among loaded habits, for the year selector."""
        years = [
            entry.date.year
            for habit_id in self._loaded
            for entry in self.reconciler.entries(habit_id)
        ]
        return min(years, default=self._today().year)

    def year_options(self) -> list[int]:
        return list(range(self._today().year, self.earliest_year() - 1, -1))
