"""Rejection reasons raised inside the game package.

Every error carries a short snake_case ``code`` that is sent back to the
client verbatim. ``RoomService`` turns them into failed results; they never
cross the service boundary as exceptions.
"""

from __future__ import annotations


class GameError(Exception):
    kind = "error"

    def __init__(self, code: str, message: str | None = None) -> None:
        super().__init__(message or code)
        self.code = code


class ValidationError(GameError):
    kind = "validation"


class AuthorizationError(GameError):
    kind = "authorization"


class NotFoundError(GameError):
    kind = "resource"


class ConflictError(GameError):
    kind = "conflict"


class StateError(GameError):
    kind = "state"


class WordGenerationError(GameError):
    """The theme generator could not produce a full grid of words."""

    kind = "resource"

    def __init__(self, message: str | None = None, code: str = "word_generation_failed") -> None:
        super().__init__(code, message)


class ThemeRejected(WordGenerationError):
    kind = "validation"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message, code="theme_rejected")
