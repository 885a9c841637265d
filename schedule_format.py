# schedule_format.py
"""
Turns a day's greetings into the reply text.

    01/01 の予定
    10:00-10:15 Fantasy Land
    - Mickey

    10:30-10:45 Sanrio Town
    - Kitty
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Iterable, List

from greeting_api import Greeting

HEADER_SUFFIX = " の予定"
CHARACTER_BULLET = "- "


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        raise ValueError(f"timestamp without UTC offset: {value!r}")
    return parsed


def visible_greetings(greetings: Iterable[Greeting]) -> List[Greeting]:
    """Drop deleted entries and order by (end_at, start_at, place name)."""
    kept = [g for g in greetings if not g.deleted]
    # sorted() is stable, so equal keys keep their decode order
    return sorted(kept, key=lambda g: (g.end_at, g.start_at, g.place.name))


def format_greeting(greeting: Greeting) -> str:
    start_at = parse_timestamp(greeting.start_at)
    end_at = parse_timestamp(greeting.end_at)
    lines = [f"{start_at:%H:%M}-{end_at:%H:%M} {greeting.place.name}"]
    lines.extend(CHARACTER_BULLET + character.name for character in greeting.characters)
    return "\n".join(lines)


def render_schedule(today: date, greetings: Iterable[Greeting]) -> str:
    blocks = [format_greeting(g) for g in visible_greetings(greetings)]
    header = f"{today:%m/%d}{HEADER_SUFFIX}\n"
    return header + "\n\n".join(blocks)
