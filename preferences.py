from typing import Literal, Optional

THEME_COOKIE = "user-theme-preference"
THEME_COOKIE_MAX_AGE = 31536000
DEFAULT_THEME = "dark"

Theme = Literal["light", "dark"]


def resolve_theme(stored: Optional[str]) -> str:
    """Theme from the persisted cookie value, falling back to dark."""
    if stored in ("light", "dark"):
        return stored
    return DEFAULT_THEME


def toggle(theme: str) -> str:
    return "dark" if theme == "light" else "light"
