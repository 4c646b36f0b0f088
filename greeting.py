from datetime import datetime
from typing import Optional


# a known new moon: 2000-01-06 18:14
KNOWN_NEW_MOON = datetime(2000, 1, 6, 18, 14)
LUNAR_CYCLE_DAYS = 29.53058867

MOON_PHASES = (
    (0.0625, "\U0001F311"),  # new moon
    (0.1875, "\U0001F312"),  # waxing crescent
    (0.3125, "\U0001F313"),  # first quarter
    (0.4375, "\U0001F314"),  # waxing gibbous
    (0.5625, "\U0001F315"),  # full moon
    (0.6875, "\U0001F316"),  # waning gibbous
    (0.8125, "\U0001F317"),  # last quarter
    (0.9375, "\U0001F318"),  # waning crescent
)


def moon_phase(now: datetime) -> float:
    """Position in the lunar cycle, 0 = new moon, 0.5 = full moon."""
    midnight = datetime(now.year, now.month, now.day)
    days = (midnight - KNOWN_NEW_MOON).total_seconds() / 86400
    return (days % LUNAR_CYCLE_DAYS) / LUNAR_CYCLE_DAYS


def moon_emoji(now: datetime) -> str:
    phase = moon_phase(now)
    for upper, emoji in MOON_PHASES:
        if phase < upper:
            return emoji
    return MOON_PHASES[0][1]


def get_greeting(now: Optional[datetime] = None) -> dict:
    if now is None:
        now = datetime.now()
    if now.hour < 12:
        return {"emoji": "☀️", "text": "Good morning"}
    if now.hour < 18:
        return {"emoji": "\U0001F324️", "text": "Good afternoon"}
    return {"emoji": moon_emoji(now), "text": "Good evening"}
