import asyncio
from datetime import date

from backends import EntryBackend, EntryRecord, HabitInfo
from errors import BackendError


async def settle(rounds: int = 5):
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeBackend(EntryBackend):
    """In-memory store with knobs for slow and failing calls."""

    def __init__(self, habits=(), entries=None):
        self.habits = list(habits)
        self.store: dict[int, dict[date, int]] = {k: dict(v) for k, v in (entries or {}).items()}
        self.ids: dict[tuple[int, date], int] = {}
        self.reads = []
        self.writes = []
        self.fail_writes = False
        self.fail_reads: set[int] = set()
        self.read_gates: dict[int, asyncio.Event] = {}
        # when set, each write waits for the test to resolve its future with
        # None (succeed) or an exception (fail)
        self.hold_writes = False
        self.pending: list[asyncio.Future] = []

    def _id(self, habit_id, day):
        return self.ids.setdefault((habit_id, day), len(self.ids) + 1)

    async def list_active_habits(self):
        return list(self.habits)

    async def get_entries(self, habit_id, since_days=None, start=None, end=None):
        self.reads.append((habit_id, since_days, start, end))
        gate = self.read_gates.get(habit_id)
        if gate is not None:
            await gate.wait()
        if habit_id in self.fail_reads:
            raise BackendError("entries unavailable")
        return [
            EntryRecord(date=day, count=count, id=self._id(habit_id, day), habit_id=habit_id)
            for day, count in sorted(self.store.get(habit_id, {}).items())
        ]

    async def upsert_entry(self, habit_id, day, count):
        self.writes.append((habit_id, day, count))
        if self.hold_writes:
            future = asyncio.get_running_loop().create_future()
            self.pending.append(future)
            error = await future
            if error is not None:
                raise error
        elif self.fail_writes:
            raise BackendError("store unavailable")
        self.store.setdefault(habit_id, {})[day] = count
        return EntryRecord(date=day, count=count, id=self._id(habit_id, day), habit_id=habit_id)


def habit(habit_id=1, daily_goal=3, color="#FFB3BA", name="Read"):
    return HabitInfo(id=habit_id, name=name, daily_goal=daily_goal, color=color)
