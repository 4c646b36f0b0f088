from fastapi import FastAPI, Depends, Query, Request, Response
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session
from datetime import date
from pathlib import Path
from typing import Optional
import os

import crud
import models
from auth import router as auth_router, get_current_user
from backends import SessionBackend
from colors import PASTEL_COLORS, map_color
from dashboard import DashboardComposer, EMPTY_MESSAGE, fetch_params
from database import engine, get_db, get_session_factory
from errors import NotAuthorized
from greeting import get_greeting
from grid import DAY_LABELS, RollingWindow, YearWindow, build_grid, window_caption
from logging_setup import setup_logging
from models import User
from preferences import THEME_COOKIE, THEME_COOKIE_MAX_AGE, resolve_theme, toggle
from schemas import (
    CellRead, EntryIncrement, EntryRead, EntryUpsert, HabitCreate, HabitRead,
    HabitUpdate, HabitWithEntries, HeatmapRead, ThemePreference,
)


setup_logging()

DEFAULT_WINDOW_DAYS = int(os.getenv("DEFAULT_WINDOW_DAYS", "365"))
DEFAULT_ENTRY_DAYS = 30
# keeps week padding and day arithmetic inside the date range
MAX_WINDOW_DAYS = 3650
MIN_YEAR, MAX_YEAR = date.min.year + 1, date.max.year - 1

models.Base.metadata.create_all(bind=engine)

app = FastAPI(title="Habit Heatmap")
app.include_router(auth_router)

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))


def get_today() -> date:
    return date.today()


def _window(days: Optional[int], year: Optional[int]):
    if year is not None:
        return YearWindow(year)
    return RollingWindow(days or DEFAULT_WINDOW_DAYS)


@app.exception_handler(NotAuthorized)
async def not_authorized_handler(request: Request, exc: NotAuthorized):
    return JSONResponse(status_code=403, content={"detail": exc.message})


@app.get("/")
def root():
    return {"message": "API is active 🚀"}

@app.get("/ping")
def ping():
    return {"message": "pong 🏓"}

@app.get("/colors")
def preset_colors():
    return {"colors": list(PASTEL_COLORS)}

# --- Habits CRUD PROTECTED---

# -- GET --

# GET all the habits for the logged in user, newest first
@app.get("/habits", response_model=list[HabitRead])
def get_habits(active: bool = False, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return crud.list_habits(db, current_user.id, active_only=active)


# GET one habit with its last year of entries
@app.get("/habits/{habit_id}", response_model=HabitWithEntries)
def get_habit(habit_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    habit = crud.get_habit(db, current_user.id, habit_id)
    return HabitWithEntries(
        **HabitRead.model_validate(habit).model_dump(),
        entries=[EntryRead.model_validate(e) for e in crud.recent_entries(db, habit)],
    )


# GET entries for a habit, either the last N days or a date range
@app.get("/habits/{habit_id}/entries", response_model=list[EntryRead])
def get_entries(
    habit_id: int,
    days: Optional[int] = Query(None, ge=1, le=MAX_WINDOW_DAYS),
    start: Optional[date] = None,
    end: Optional[date] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    today: date = Depends(get_today),
):
    if days is None and start is None and end is None:
        days = DEFAULT_ENTRY_DAYS
    return crud.get_entries(db, current_user.id, habit_id, since_days=days, start=start, end=end, today=today)


# GET the entry for one date, null if nothing was recorded
@app.get("/habits/{habit_id}/entries/{day}", response_model=Optional[EntryRead])
def get_entry(habit_id: int, day: date, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return crud.get_entry(db, current_user.id, habit_id, day)


# GET the heatmap grid for a habit
@app.get("/habits/{habit_id}/heatmap", response_model=HeatmapRead)
def get_heatmap(
    habit_id: int,
    days: Optional[int] = Query(None, ge=1, le=MAX_WINDOW_DAYS),
    year: Optional[int] = Query(None, ge=MIN_YEAR, le=MAX_YEAR),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    today: date = Depends(get_today),
):
    window = _window(days, year)
    habit = crud.get_habit(db, current_user.id, habit_id)
    entries = crud.get_entries(db, current_user.id, habit_id, today=today, **fetch_params(window, today))
    weeks = build_grid(entries, habit.daily_goal, window, today)
    return HeatmapRead(
        habit_id=habit.id,
        caption=window_caption(window),
        weeks=[
            [
                CellRead(
                    date=cell.date,
                    count=cell.count,
                    intensity=cell.intensity,
                    is_today=cell.is_today,
                    color=map_color(habit.color, cell.intensity),
                ) if cell is not None else None
                for cell in week
            ]
            for week in weeks
        ],
    )

# -- POST --

# CREATE a habit for the logged in user
@app.post("/habits", response_model=HabitRead)
def create_habit(habit: HabitCreate, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return crud.create_habit(db, current_user.id, habit)

# ARCHIVE a habit (soft delete)
@app.post("/habits/{habit_id}/archive", response_model=HabitRead)
def archive_habit(habit_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return crud.archive_habit(db, current_user.id, habit_id)

# INCREMENT an entry, today unless a date is given
@app.post("/habits/{habit_id}/entries/increment", response_model=EntryRead)
def increment_entry(
    habit_id: int,
    body: Optional[EntryIncrement] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    today: date = Depends(get_today),
):
    body = body or EntryIncrement()
    return crud.increment_entry(db, current_user.id, habit_id, day=body.date or today, amount=body.amount)

# -- PUT / PATCH --

# SET the count for a date, creating the entry if needed
@app.put("/habits/{habit_id}/entries", response_model=EntryRead)
def upsert_entry(habit_id: int, body: EntryUpsert, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return crud.upsert_entry(db, current_user.id, habit_id, body.date, body.count)

@app.patch("/habits/{habit_id}", response_model=HabitRead)
def update_habit(habit_id: int, updated_data: HabitUpdate, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return crud.update_habit(db, current_user.id, habit_id, updated_data)

# -- DELETE --

@app.delete("/habits/{habit_id}", response_model=HabitRead)
def delete_habit(habit_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return crud.delete_habit(db, current_user.id, habit_id)

@app.delete("/entries/{entry_id}", response_model=EntryRead)
def delete_entry(entry_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return crud.delete_entry(db, current_user.id, entry_id)

# --- Dashboard ---

@app.get("/dashboard", response_class=HTMLResponse)
async def dashboard_page(
    request: Request,
    days: Optional[int] = Query(None, ge=1, le=MAX_WINDOW_DAYS),
    year: Optional[int] = Query(None, ge=MIN_YEAR, le=MAX_YEAR),
    current_user: User = Depends(get_current_user),
    session_factory=Depends(get_session_factory),
    today: date = Depends(get_today),
):
    window = _window(days, year)
    backend = SessionBackend(session_factory, current_user.id, today=today)
    composer = DashboardComposer(backend, window=window, today=today)
    panels = await composer.load()
    return templates.TemplateResponse(request, "dashboard.html", {
        "theme": resolve_theme(request.cookies.get(THEME_COOKIE)),
        "greeting": get_greeting(),
        "panels": panels,
        "is_empty": composer.is_empty,
        "empty_message": EMPTY_MESSAGE,
        "day_labels": DAY_LABELS,
        "year_options": composer.year_options(),
        "selected_year": year,
        "window_days": None if year is not None else window.days,
    })

# --- Preferences ---

@app.post("/preferences/theme")
def set_theme(preference: ThemePreference, response: Response):
    response.set_cookie(THEME_COOKIE, preference.theme, max_age=THEME_COOKIE_MAX_AGE, samesite="lax")
    return {"theme": preference.theme}

@app.post("/preferences/theme/toggle")
def toggle_theme(request: Request, response: Response):
    theme = toggle(resolve_theme(request.cookies.get(THEME_COOKIE)))
    response.set_cookie(THEME_COOKIE, theme, max_age=THEME_COOKIE_MAX_AGE, samesite="lax")
    return {"theme": theme}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))
