"""
Room helpers for codes, display names and nicknames.
"""

import random
import re
from typing import Optional

from .constants import (
    DEFAULT_PLAYER_NAME, DEFAULT_ROOM_NAME, MAX_NICKNAME_LENGTH,
    MAX_ROOM_CODE_LENGTH, MAX_ROOM_NAME_LENGTH, ROOM_CODE_ALPHABET, ROOM_CODE_LENGTH,
)

_WHITESPACE = re.compile(r"\s+")
_NOT_CODE_CHAR = re.compile(r"[^A-Z0-9]")


def normalize_room_code(code: Optional[str]) -> str:
    return _NOT_CODE_CHAR.sub("", (code or "").upper())[:MAX_ROOM_CODE_LENGTH]


def _collapse(text: Optional[str]) -> str:
    return _WHITESPACE.sub(" ", (text or "").strip())


def normalize_room_name(name: Optional[str]) -> str:
    return _collapse(name)[:MAX_ROOM_NAME_LENGTH]


def normalize_nickname(name: Optional[str]) -> str:
    return _collapse(name)[:MAX_NICKNAME_LENGTH]


def get_room_display_name(name: Optional[str]) -> str:
    return normalize_room_name(name) or DEFAULT_ROOM_NAME


def get_default_room_name(self_name: Optional[str] = None) -> str:
    raw = (self_name or "").strip()
    first = raw.split()[0] if raw else DEFAULT_PLAYER_NAME
    return normalize_room_name(f"{first}'s Lobby") or DEFAULT_ROOM_NAME


def make_room_code(rng: Optional[random.Random] = None) -> str:
    rng = rng or random
    return "".join(rng.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))
