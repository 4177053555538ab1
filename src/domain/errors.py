"""Error taxonomy shared by the party, playback and catalog domains."""

from __future__ import annotations


class PartyServiceError(Exception):
    """Base class for recoverable domain failures."""

    code = "error"
    http_status = 400

    def __init__(self, message: str = "", *, code: str | None = None) -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        if code:
            self.code = code

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class NotFound(PartyServiceError):
    code = "not_found"
    http_status = 404


class Conflict(PartyServiceError):
    code = "conflict"
    http_status = 409


class ExternalServiceUnavailable(PartyServiceError):
    code = "external_service_unavailable"
    http_status = 503


class Unauthorized(PartyServiceError):
    code = "unauthorized"
    http_status = 403


class ReservedPlaylist(Conflict):
    code = "reserved_playlist"


__all__ = [
    "PartyServiceError",
    "NotFound",
    "Conflict",
    "ExternalServiceUnavailable",
    "Unauthorized",
    "ReservedPlaylist",
]
