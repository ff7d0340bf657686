"""Deterministic, collision-avoiding project color assignment."""

import re
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel

PROJECT_PASTEL_HEX = [
    "#A9E8E8",
    "#83CCD2",
    "#F5E29E",
    "#E2CF88",
    "#D2CCF2",
    "#BEB9E2",
    "#E8B7CA",
    "#D8B0C8",
    "#F68BA2",
    "#DFCFF3",
    "#ADE1EF",
    "#C6EAEE",
    "#B2EAD3",
    "#B1E8ED",
    "#EDBDD5",
    "#C8EBEF",
    "#C0F3EA",
    "#F5F4D6",
]

HEX_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")


class ColorCandidate(BaseModel):
    key: str
    name: str
    color: Optional[str] = None


def hash_text(value: str) -> int:
    """31-multiplier string hash kept in 32 unsigned bits."""
    result = 0
    for char in value:
        result = (result * 31 + ord(char)) & 0xFFFFFFFF
    return result


def normalize_hex_color(value: Optional[str]) -> Optional[str]:
    """'#abcdef' -> '#ABCDEF'; None for anything that is not a 6-digit hex color."""
    raw = (value or "").strip()
    if not HEX_COLOR_RE.match(raw):
        return None
    return raw.upper()


def assign_unique_pastel_colors(
    projects: Iterable[ColorCandidate],
    palette: Optional[List[str]] = None,
) -> Dict[str, str]:
    """
    Assign a palette color to every project key.

    Projects are processed in (normalized name, key) order. An explicit in-palette
    color is kept if nobody claimed it yet; other projects probe the palette from
    hash("name::key") mod N until a free color is found. Once the palette is
    exhausted the hashed color is used even though it collides.
    """
    palette = [color.upper() for color in (palette or PROJECT_PASTEL_HEX)]
    palette_set = set(palette)
    ordered = sorted(projects, key=lambda p: (p.name.strip().lower(), p.key))

    assigned: Dict[str, str] = {}
    claimed = set()
    pending: List[ColorCandidate] = []

    for project in ordered:
        explicit = normalize_hex_color(project.color)
        if explicit and explicit in palette_set and explicit not in claimed:
            assigned[project.key] = explicit
            claimed.add(explicit)
        else:
            pending.append(project)

    for project in pending:
        start = hash_text(f"{project.name.strip().lower()}::{project.key}") % len(palette)
        color = palette[start]
        for step in range(len(palette)):
            candidate = palette[(start + step) % len(palette)]
            if candidate not in claimed:
                color = candidate
                break
        assigned[project.key] = color
        claimed.add(color)

    return assigned
