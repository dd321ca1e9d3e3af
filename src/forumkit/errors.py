"""Exception hierarchy.

Lookups of missing rows are not errors: services return ``None`` / ``False``.
Store and identity-provider failures propagate as the underlying library's exceptions.
"""

from __future__ import annotations


class ForumError(Exception):
    """Base class for errors raised by forumkit itself."""


class ValidationError(ForumError):
    """Input rejected before anything was written."""
