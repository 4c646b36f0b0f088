"""Habit and entry storage with ownership checks.

Every function takes the requesting user's id and raises ``NotAuthorized`` when
the habit (or entry) is missing or owned by someone else.
"""
import logging
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import models
from errors import NotAuthorized
from schemas import HabitCreate, HabitUpdate


logger = logging.getLogger(__name__)

HABIT_ENTRY_HISTORY = 365


# -- users --

def get_user(db: Session, user_id: int) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.id == user_id).first()


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.email == email).first()


def create_user(db: Session, email: str, hashed_password: str) -> models.User:
    user = models.User(email=email, hashed_password=hashed_password)
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered user %s", user.id)
    return user


# -- habits --

def get_habit(db: Session, user_id: int, habit_id: int) -> models.Habit:
    habit = db.query(models.Habit).filter(models.Habit.id == habit_id).first()
    if not habit or habit.user_id != user_id:
        logger.warning("User %s denied access to habit %s", user_id, habit_id)
        raise NotAuthorized()
    return habit


def list_habits(db: Session, user_id: int, active_only: bool = False) -> list[models.Habit]:
    query = db.query(models.Habit).filter(models.Habit.user_id == user_id)
    if active_only:
        query = query.filter(models.Habit.is_active.is_(True))
    return query.order_by(models.Habit.created_at.desc(), models.Habit.id.desc()).all()


def list_active_habits(db: Session, user_id: int) -> list[models.Habit]:
    return list_habits(db, user_id, active_only=True)


def recent_entries(db: Session, habit: models.Habit, limit: int = HABIT_ENTRY_HISTORY) -> list[models.HabitEntry]:
    return (
        db.query(models.HabitEntry)
        .filter(models.HabitEntry.habit_id == habit.id)
        .order_by(models.HabitEntry.date.desc())
        .limit(limit)
        .all()
    )


def create_habit(db: Session, user_id: int, data: HabitCreate) -> models.Habit:
    habit = models.Habit(
        name=data.name,
        description=data.description,
        daily_goal=data.daily_goal,
        color=data.color,
        user_id=user_id,
    )
    db.add(habit)
    db.commit()
    db.refresh(habit)
    logger.info("User %s created habit %s", user_id, habit.id)
    return habit


def update_habit(db: Session, user_id: int, habit_id: int, data: HabitUpdate) -> models.Habit:
    habit = get_habit(db, user_id, habit_id)
    for key, value in data.model_dump(exclude_unset=True).items():
        setattr(habit, key, value)
    db.commit()
    db.refresh(habit)
    logger.info("User %s updated habit %s", user_id, habit.id)
    return habit


def archive_habit(db: Session, user_id: int, habit_id: int) -> models.Habit:
    habit = get_habit(db, user_id, habit_id)
    habit.is_active = False
    db.commit()
    db.refresh(habit)
    logger.info("User %s archived habit %s", user_id, habit.id)
    return habit


def delete_habit(db: Session, user_id: int, habit_id: int) -> models.Habit:
    habit = get_habit(db, user_id, habit_id)
    db.delete(habit)
    db.commit()
    logger.info("User %s deleted habit %s", user_id, habit_id)
    return habit


# -- entries --

def get_entries(db: Session, user_id: int, habit_id: int,
                since_days: Optional[int] = None,
                start: Optional[date] = None, end: Optional[date] = None,
                today: Optional[date] = None) -> list[models.HabitEntry]:
    """Entries for a habit, ascending by date.

    ``since_days=N`` covers ``today - N`` through ``today``; otherwise the
    inclusive ``start``/``end`` range is used, either side optional.
    """
    get_habit(db, user_id, habit_id)

    if since_days is not None:
        if today is None:
            today = date.today()
        start, end = today - timedelta(days=since_days), today

    query = db.query(models.HabitEntry).filter(models.HabitEntry.habit_id == habit_id)
    if start is not None:
        query = query.filter(models.HabitEntry.date >= start)
    if end is not None:
        query = query.filter(models.HabitEntry.date <= end)
    return query.order_by(models.HabitEntry.date.asc()).all()


def get_entry(db: Session, user_id: int, habit_id: int, day: date) -> Optional[models.HabitEntry]:
    get_habit(db, user_id, habit_id)
    return _find_entry(db, habit_id, day)


def _find_entry(db: Session, habit_id: int, day: date) -> Optional[models.HabitEntry]:
    return (
        db.query(models.HabitEntry)
        .filter(models.HabitEntry.habit_id == habit_id, models.HabitEntry.date == day)
        .first()
    )


def _write_entry(db: Session, habit_id: int, day: date, apply) -> models.HabitEntry:
    # apply(existing_count or None) -> new count
    entry = _find_entry(db, habit_id, day)
    if entry is None:
        entry = models.HabitEntry(habit_id=habit_id, date=day, count=apply(None))
        db.add(entry)
        try:
            db.commit()
        except IntegrityError:
            # someone else created the (habit, date) row first
            db.rollback()
            entry = _find_entry(db, habit_id, day)
            entry.count = apply(entry.count)
            db.commit()
    else:
        entry.count = apply(entry.count)
        db.commit()
    db.refresh(entry)
    return entry


def upsert_entry(db: Session, user_id: int, habit_id: int, day: date, count: int) -> models.HabitEntry:
    if count < 0:
        raise ValueError("count must be non-negative")
    get_habit(db, user_id, habit_id)
    entry = _write_entry(db, habit_id, day, lambda _current: count)
    logger.info("Habit %s entry %s set to %s", habit_id, day, entry.count)
    return entry


def increment_entry(db: Session, user_id: int, habit_id: int,
                    day: Optional[date] = None, amount: int = 1) -> models.HabitEntry:
    if amount <= 0:
        raise ValueError("amount must be positive")
    get_habit(db, user_id, habit_id)
    if day is None:
        day = date.today()
    entry = _write_entry(db, habit_id, day, lambda current: amount if current is None else current + amount)
    logger.info("Habit %s entry %s incremented to %s", habit_id, day, entry.count)
    return entry


def delete_entry(db: Session, user_id: int, entry_id: int) -> models.HabitEntry:
    entry = db.query(models.HabitEntry).filter(models.HabitEntry.id == entry_id).first()
    if not entry or entry.habit.user_id != user_id:
        logger.warning("User %s denied access to entry %s", user_id, entry_id)
        raise NotAuthorized()
    db.delete(entry)
    db.commit()
    logger.info("User %s deleted entry %s", user_id, entry_id)
    return entry
