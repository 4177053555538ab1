#!/usr/bin/env python
"""
Pydantic DTOs for the track, playlist and party documents.

Track payloads arrive in two shapes: streaming-provider objects (album
images, artist objects with ids) and locally uploaded song documents
(``coverImgUrl``, plain artist names). ``Track.from_payload`` normalises
both into one canonical model used by the stores and the playback engine.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from config import Config

LIKED_SONGS = "liked_songs"
DISLIKED_SONGS = "disliked_songs"
RESERVED_PLAYLIST_NAMES = frozenset({LIKED_SONGS, DISLIKED_SONGS})


class ArtistRef(BaseModel):
    """Artist reference as embedded in a track document."""

    model_config = ConfigDict(extra="ignore")

    name: str
    id: Optional[str] = None
    images: List[Dict[str, Any]] = Field(default_factory=list)


class Track(BaseModel):
    """Normalized track; immutable apart from the runtime playback flags."""

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    id: Optional[str] = None
    uri: str
    name: str
    artists: List[ArtistRef] = Field(default_factory=list)
    duration_ms: int = Field(default=0, ge=0)
    cover_img_url: Optional[str] = None
    is_local: bool = False
    preview_url: Optional[str] = None
    genre: List[str] = Field(default_factory=list)
    dj: bool = False
    # Runtime only; never persisted
    stats_updated: bool = Field(default=False, exclude=True)

    @field_validator("artists", mode="before")
    @classmethod
    def _coerce_artists(cls, value: object) -> List[Any]:
        if value is None:
            return []
        if isinstance(value, (str, dict)):
            value = [value]
        artists: List[Any] = []
        for entry in value:  # type: ignore[union-attr]
            if isinstance(entry, str):
                if entry.strip():
                    artists.append({"name": entry.strip()})
            elif entry:
                artists.append(entry)
        return artists

    @field_validator("genre", mode="before")
    @classmethod
    def _coerce_genre(cls, value: object) -> List[str]:
        if not value:
            return []
        if isinstance(value, str):
            return [value]
        return [str(v) for v in value if v]  # type: ignore[union-attr]

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Track":
        """Build a track from a provider object or a stored document."""
        if isinstance(payload, Track):
            return payload
        data = dict(payload or {})
        album = data.get("album") or {}
        cover = data.get("cover_img_url") or data.get("coverImgUrl")
        if not cover and album.get("images"):
            cover = album["images"][0].get("url")
        is_local = bool(data.get("is_local", data.get("isLocal", False)))
        uri = data.get("uri") or data.get("url") or ""
        return cls.model_validate(
            {
                "id": data.get("id") or data.get("_id"),
                "uri": uri,
                "name": data.get("name") or data.get("title") or "",
                "artists": data.get("artists") or data.get("artist"),
                "duration_ms": data.get("duration_ms") or data.get("durationMs") or 0,
                "cover_img_url": cover,
                "is_local": is_local,
                "preview_url": data.get("preview_url") or data.get("previewUrl"),
                "genre": data.get("genre"),
                "dj": bool(data.get("dj", False)),
            }
        )

    @property
    def effective_duration_ms(self) -> int:
        """Duration used for progress and end-of-track detection."""
        if self.dj:
            return Config.DJ_PREVIEW_MS
        return self.duration_ms

    @property
    def primary_artist(self) -> Optional[ArtistRef]:
        return self.artists[0] if self.artists else None

    @property
    def has_preview(self) -> bool:
        return bool(self.preview_url)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump()


class PlaylistDTO(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    owner: str
    name: str
    description: Optional[str] = None
    visibility: str = "private"
    cover_img_url: Optional[str] = None
    songs: List[Track] = Field(default_factory=list)

    @property
    def is_reserved(self) -> bool:
        return self.name in RESERVED_PLAYLIST_NAMES


class PartyDTO(BaseModel):
    """Snapshot of a party document as members fetch it."""

    model_config = ConfigDict(extra="ignore")

    id: int
    host: str
    name: str
    people: List[str] = Field(default_factory=list)
    songs: List[Track] = Field(default_factory=list)
    dj_mode: bool = False

    def is_member(self, username: str) -> bool:
        return username in self.people

    def is_host(self, username: str) -> bool:
        return username == self.host


__all__ = [
    "ArtistRef",
    "Track",
    "PlaylistDTO",
    "PartyDTO",
    "LIKED_SONGS",
    "DISLIKED_SONGS",
    "RESERVED_PLAYLIST_NAMES",
]
