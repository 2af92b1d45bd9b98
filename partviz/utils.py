# utils.py

import zlib

FREE_COLOR = "#d3d3d3"
RESERVED_COLOR = "#555555"


def get_color(allocated, name=None, reserved=False):
    """Return a color for a free, reserved or program region."""
    if not allocated:
        return FREE_COLOR
    if reserved:
        return RESERVED_COLOR
    # pastel hue derived from the program name so it is stable across reruns
    hue = zlib.crc32((name or "").encode("utf-8")) % 360
    return f"hsl({hue}, 70%, 75%)"


def format_mib(value):
    return f"{value:.2f}"
