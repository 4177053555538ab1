"""Playlist sources the playback engine advances through.

A source is one of three tagged variants:

* ``StoredSource`` - a persisted playlist or a party's song queue.
* ``AdHocQueue`` - tracks queued without an active playlist; never persisted.
* ``RecommendationSource`` - continuation material fetched when a queue ran dry.

Next/previous resolution branches on the variant rather than on the source's
name, so a user playlist that happens to be called "queue" is still a stored
playlist.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Union

from src.models.dto import PartyDTO, PlaylistDTO, Track

QUEUE_NAME = "queue"
RECOMMENDATION_NAME = "Recommendation"


class _TrackListMixin:
    tracks: List[Track]

    def index_of(self, track: Optional[Track]) -> int:
        """Position of ``track`` by URI, or -1 when it is not in the source."""
        if track is None:
            return -1
        for index, candidate in enumerate(self.tracks):
            if candidate.uri == track.uri:
                return index
        return -1

    def track_at(self, index: int) -> Optional[Track]:
        if 0 <= index < len(self.tracks):
            return self.tracks[index]
        return None

    def is_last(self, track: Optional[Track]) -> bool:
        return bool(self.tracks) and self.index_of(track) == len(self.tracks) - 1

    def __len__(self) -> int:
        return len(self.tracks)


@dataclass
class StoredSource(_TrackListMixin):
    playlist_id: int
    name: str
    tracks: List[Track] = field(default_factory=list)
    origin: str = "playlist"

    @classmethod
    def from_playlist(cls, playlist: PlaylistDTO) -> "StoredSource":
        return cls(playlist_id=playlist.id, name=playlist.name, tracks=list(playlist.songs))

    @classmethod
    def from_party(cls, party: PartyDTO) -> "StoredSource":
        return cls(playlist_id=party.id, name=party.name, tracks=list(party.songs), origin="party")


@dataclass
class AdHocQueue(_TrackListMixin):
    tracks: List[Track] = field(default_factory=list)
    name: str = QUEUE_NAME


@dataclass
class RecommendationSource(_TrackListMixin):
    tracks: List[Track] = field(default_factory=list)
    name: str = RECOMMENDATION_NAME


PlaylistSource = Union[StoredSource, AdHocQueue, RecommendationSource]


def is_synthetic(source: Optional[PlaylistSource]) -> bool:
    """True for runtime-only sources that fall back to recommendations when exhausted."""
    return isinstance(source, (AdHocQueue, RecommendationSource))


__all__ = [
    "StoredSource",
    "AdHocQueue",
    "RecommendationSource",
    "PlaylistSource",
    "QUEUE_NAME",
    "RECOMMENDATION_NAME",
    "is_synthetic",
]
