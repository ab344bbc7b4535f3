"""Domain error taxonomy shared by challenge, profile and social services."""

from __future__ import annotations


class CultureBridgeError(Exception):
    """Base class for all domain errors."""

    status_code: int = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class Unauthenticated(CultureBridgeError):
    """No bound user/profile. Recoverable by completing sign-in."""

    status_code = 401


class PersistenceFailure(CultureBridgeError):
    """A row store insert/update/delete failed or timed out.

    ``stage`` tells callers which write failed, since an attempt row stays
    durable even when the follow-up profile update does not.
    """

    status_code = 503

    def __init__(self, message: str, stage: str) -> None:
        super().__init__(message)
        self.stage = stage


class NotFound(CultureBridgeError):
    """Referenced entity absent at mutation time."""

    status_code = 404


class DegradedChallenge(CultureBridgeError):
    """Challenge cannot be scored (no correct answer)."""

    status_code = 422


class Conflict(CultureBridgeError):
    """Write would violate a uniqueness rule (e.g. duplicate friend request)."""

    status_code = 409
