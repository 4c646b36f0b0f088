import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from preferences import Theme


HEX_COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"
DEFAULT_COLOR = "#3b82f6"


def _calendar_date(value):
    """Accept a datetime (or ISO datetime string) and keep only its date."""
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, str) and "T" in value:
        return dt.datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    return value


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str


class HabitCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    daily_goal: int = Field(default=1, gt=0)
    color: str = Field(default=DEFAULT_COLOR, pattern=HEX_COLOR_PATTERN)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Name is required")
        return v


class HabitUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    daily_goal: Optional[int] = Field(default=None, gt=0)
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR_PATTERN)
    is_active: Optional[bool] = None

    @field_validator("name", "daily_goal", "color", "is_active")
    @classmethod
    def not_null(cls, v, info):
        # an omitted field is left alone; an explicit null is rejected
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Name is required")
        return v


class HabitRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str]
    daily_goal: int
    color: str
    is_active: bool
    created_at: dt.datetime


class EntryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    habit_id: int
    date: dt.date
    count: int


class HabitWithEntries(HabitRead):
    entries: list[EntryRead] = []


class EntryUpsert(BaseModel):
    date: dt.date
    count: int = Field(ge=0)

    @field_validator("date", mode="before")
    @classmethod
    def normalize_date(cls, v):
        return _calendar_date(v)


class EntryIncrement(BaseModel):
    date: Optional[dt.date] = None
    amount: int = Field(default=1, gt=0)

    @field_validator("date", mode="before")
    @classmethod
    def normalize_date(cls, v):
        return _calendar_date(v)


class ThemePreference(BaseModel):
    theme: Theme


class CellRead(BaseModel):
    date: dt.date
    count: int
    intensity: float
    is_today: bool
    color: str


class HeatmapRead(BaseModel):
    habit_id: int
    caption: str
    weeks: list[list[Optional[CellRead]]]
