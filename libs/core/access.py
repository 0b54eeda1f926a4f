"""Ownership and visibility decisions for notes."""

from __future__ import annotations

from enum import Enum
from typing import Any


class Access(str, Enum):
    OWNER = "owner"
    VIEWER = "viewer"
    DENIED = "denied"

    @property
    def can_read(self) -> bool:
        return self is not Access.DENIED

    @property
    def can_write(self) -> bool:
        return self is Access.OWNER


def decide(requester_id: int, note: Any) -> Access:
    """Map a requester and a note to the access level they hold.

    ``note`` only needs ``user_id`` and ``is_public`` attributes, so ORM rows
    and domain models are both accepted.
    """
    if note.user_id == requester_id:
        return Access.OWNER
    if note.is_public:
        return Access.VIEWER
    return Access.DENIED


__all__ = ["Access", "decide"]
