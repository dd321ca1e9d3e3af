"""State enumerations for threads and posts."""

from __future__ import annotations

from enum import StrEnum


class ThreadState(StrEnum):
    """Thread visibility. Transitions between values are unrestricted."""
    DRAFT = "draft"
    PUBLISHED = "published"
    HIDDEN = "hidden"


class PostState(StrEnum):
    """Post visibility."""
    PUBLISHED = "published"
    HIDDEN = "hidden"


# Only these states are ever returned by viewer-facing listings
ACCESSIBLE_THREAD_STATES = (ThreadState.PUBLISHED,)
ACCESSIBLE_POST_STATES = (PostState.PUBLISHED,)
