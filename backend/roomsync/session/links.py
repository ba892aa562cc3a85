"""Shareable ``#join:<room id>`` links."""

import re

JOIN_FRAGMENT_PREFIX = "#join:"
_JOIN_FRAGMENT_RE = re.compile(r"#join:([0-9a-f-]+)$")


def parse_join_fragment(fragment: str | None) -> str | None:
    """Return the room id a page fragment asks to join, or None."""
    if not fragment:
        return None
    match = _JOIN_FRAGMENT_RE.search(fragment)
    return match.group(1) if match else None


def join_link(origin: str, room_id: str) -> str:
    return f"{origin.rstrip('/')}/{JOIN_FRAGMENT_PREFIX}{room_id}"
