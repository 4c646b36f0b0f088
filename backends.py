"""Async adapters over the habit store.

The reconciler and dashboard composer only see ``EntryBackend``. The server
renders pages through ``SessionBackend``; remote callers use ``HttpBackend``
against the JSON API.
"""
import abc
import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

import httpx
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import SQLAlchemyError

import crud
from errors import BackendError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HabitInfo:
    id: int
    name: str
    daily_goal: int
    color: str
    description: Optional[str] = None

    @classmethod
    def from_model(cls, habit):
        return cls(
            id=habit.id,
            name=habit.name,
            daily_goal=habit.daily_goal,
            color=habit.color,
            description=habit.description,
        )


@dataclass(frozen=True)
class EntryRecord:
    date: date
    count: int
    # None until the store has assigned one
    id: Optional[int] = None
    habit_id: Optional[int] = None

    @classmethod
    def from_model(cls, entry):
        return cls(date=entry.date, count=entry.count, id=entry.id, habit_id=entry.habit_id)


class EntryBackend(abc.ABC):

    @abc.abstractmethod
    async def list_active_habits(self) -> list[HabitInfo]:
        ...

    @abc.abstractmethod
    async def get_entries(self, habit_id: int, since_days: Optional[int] = None,
                          start: Optional[date] = None, end: Optional[date] = None) -> list[EntryRecord]:
        ...

    @abc.abstractmethod
    async def upsert_entry(self, habit_id: int, day: date, count: int) -> EntryRecord:
        ...


class SessionBackend(EntryBackend):
    """Runs ``crud`` calls for one user, each in its own session on the threadpool."""

    def __init__(self, session_factory, user_id: int, today: Optional[date] = None):
        self.session_factory = session_factory
        self.user_id = user_id
        self.today = today

    def _run(self, fn):
        db = self.session_factory()
        try:
            return fn(db)
        except SQLAlchemyError as exc:
            db.rollback()
            raise BackendError(str(exc)) from exc
        finally:
            db.close()

    async def list_active_habits(self):
        return await run_in_threadpool(self._run, lambda db: [
            HabitInfo.from_model(h) for h in crud.list_active_habits(db, self.user_id)
        ])

    async def get_entries(self, habit_id, since_days=None, start=None, end=None):
        return await run_in_threadpool(self._run, lambda db: [
            EntryRecord.from_model(e)
            for e in crud.get_entries(db, self.user_id, habit_id, since_days=since_days,
                                      start=start, end=end, today=self.today)
        ])

    async def upsert_entry(self, habit_id, day, count):
        return await run_in_threadpool(self._run, lambda db: EntryRecord.from_model(
            crud.upsert_entry(db, self.user_id, habit_id, day, count)
        ))


class HttpBackend(EntryBackend):
    """Talks to the habit API over HTTP.

    ``client`` must already carry the base URL and the bearer token.
    """

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def _request(self, method: str, url: str, **kwargs):
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise BackendError(f"{method} {url} failed: {exc}") from exc
        if response.is_error:
            try:
                body = response.json()
            except ValueError:
                body = None
            detail = body.get("detail", response.text) if isinstance(body, dict) else response.text
            raise BackendError(str(detail), status_code=response.status_code)
        return response.json()

    async def list_active_habits(self):
        data = await self._request("GET", "/habits", params={"active": "true"})
        return [
            HabitInfo(
                id=item["id"],
                name=item["name"],
                daily_goal=item["daily_goal"],
                color=item["color"],
                description=item.get("description"),
            )
            for item in data
        ]

    async def get_entries(self, habit_id, since_days=None, start=None, end=None):
        params = {}
        if since_days is not None:
            params["days"] = since_days
        if start is not None:
            params["start"] = start.isoformat()
        if end is not None:
            params["end"] = end.isoformat()
        data = await self._request("GET", f"/habits/{habit_id}/entries", params=params)
        return [_entry_from_json(item) for item in data]

    async def upsert_entry(self, habit_id, day, count):
        data = await self._request(
            "PUT", f"/habits/{habit_id}/entries",
            json={"date": day.isoformat(), "count": count},
        )
        return _entry_from_json(data)


def _entry_from_json(item: dict) -> EntryRecord:
    return EntryRecord(
        date=date.fromisoformat(item["date"]),
        count=item["count"],
        id=item.get("id"),
        habit_id=item.get("habit_id"),
    )
