NEUTRAL_COLOR = "hsl(var(--foreground) / 0.1)"

LEGEND_LEVELS = (0, 0.25, 0.5, 0.75, 1)

PASTEL_COLORS = (
    "#FFB3BA",  # light pink
    "#FFDFBA",  # light peach
    "#FFFFBA",  # light yellow
    "#BAFFC9",  # light mint
    "#BAE1FF",  # light blue
    "#C9C9FF",  # light lavender
    "#FFB3E6",  # light rose
    "#E0BBE4",  # light purple
)


def hex_to_rgb(color: str) -> tuple[int, int, int]:
    hex_value = color.lstrip("#")
    return (
        int(hex_value[0:2], 16),
        int(hex_value[2:4], 16),
        int(hex_value[4:6], 16),
    )


def map_color(base_color: str, intensity: float) -> str:
    """CSS colour for a heatmap cell.

    Zero intensity is always the neutral background tone. Anything else is the
    habit colour with the intensity as alpha. ``base_color`` is expected to be
    valid already; it is checked when the habit is created.
    """
    if intensity == 0:
        return NEUTRAL_COLOR
    r, g, b = hex_to_rgb(base_color)
    return f"rgba({r}, {g}, {b}, {intensity:g})"


def legend(base_color: str) -> list[str]:
    return [map_color(base_color, level) for level in LEGEND_LEVELS]
