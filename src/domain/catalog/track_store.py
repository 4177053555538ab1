"""Persisted playlists, liked/disliked lists and local song search."""

from __future__ import annotations

import logging
import os
from typing import Iterable, List, Optional

from sqlalchemy.exc import IntegrityError

from config import Config
from src.database.db_manager import LocalSong, Playlist, PlaylistTrack, User, db, find_user
from src.domain.errors import Conflict, NotFound, ReservedPlaylist, Unauthorized
from src.models.dto import (
    DISLIKED_SONGS,
    LIKED_SONGS,
    RESERVED_PLAYLIST_NAMES,
    PlaylistDTO,
    Track,
)

logger = logging.getLogger(__name__)

_RESERVED_DEFAULTS = {
    LIKED_SONGS: {
        'description': 'Liked songs by the user',
        'cover_img_url': 'media/liked_playlist_cover.jpg',
    },
    DISLIKED_SONGS: {
        'description': 'Disliked songs',
        'cover_img_url': 'media/disliked_playlist_cover.jpg',
    },
}
VALID_VISIBILITY = {'public', 'private'}


def _to_dto(playlist: Playlist) -> PlaylistDTO:
    return PlaylistDTO(
        id=playlist.id,
        owner=playlist.owner.username if playlist.owner else '',
        name=playlist.name,
        description=playlist.description,
        visibility=playlist.visibility,
        cover_img_url=playlist.cover_img_url,
        songs=[Track.from_payload(entry.track_snapshot) for entry in playlist.entries],
    )


def _renumber(entries: Iterable[PlaylistTrack]) -> None:
    for index, entry in enumerate(sorted(entries, key=lambda e: e.position)):
        entry.position = index


class TrackStore:
    """Track and playlist documents owned by users."""

    def __init__(self, local_search_limit: int = Config.LOCAL_SEARCH_LIMIT,
                 public_search_limit: int = Config.PUBLIC_PLAYLIST_SEARCH_LIMIT,
                 media_dir: Optional[str] = None):
        self.local_search_limit = local_search_limit
        self.public_search_limit = public_search_limit
        self.media_dir = media_dir or Config.LOCAL_MEDIA_DIR

    # --- lookups ---
    def _require_user(self, username: str) -> User:
        user = find_user(username)
        if user is None:
            raise NotFound(f"User {username!r} does not exist")
        return user

    def _playlist_row(self, playlist_id: int, username: Optional[str] = None, *, write: bool = False) -> Playlist:
        playlist = db.session.get(Playlist, playlist_id)
        if playlist is None:
            raise NotFound(f"Playlist {playlist_id} does not exist")
        if username is not None:
            is_owner = playlist.owner is not None and playlist.owner.username == username
            if not is_owner and (write or playlist.visibility != 'public'):
                raise Unauthorized("Playlist is not owned by the caller")
        return playlist

    def _reserved_playlist(self, user: User, name: str) -> Playlist:
        playlist = Playlist.query.filter_by(user_id=user.id, name=name).first()
        if playlist is None:
            defaults = _RESERVED_DEFAULTS[name]
            playlist = Playlist(
                user_id=user.id,
                name=name,
                description=defaults['description'],
                cover_img_url=defaults['cover_img_url'],
                visibility='private',
            )
            db.session.add(playlist)
            db.session.flush()
        return playlist

    def search_local_tracks(self, query: str) -> List[Track]:
        query = (query or '').strip()
        if not query:
            return []
        rows = (
            LocalSong.query.filter(LocalSong.name.ilike(f"%{query}%"))
            .order_by(LocalSong.name)
            .limit(self.local_search_limit)
            .all()
        )
        return [Track.from_payload(row.to_track_document()) for row in rows]

    def local_audio_path(self, track: Track) -> Optional[str]:
        """Filesystem path of a local track's audio, if it exists."""
        if not track.is_local or not track.uri:
            return None
        path = os.path.join(self.media_dir, track.uri.lstrip('/'))
        return path if os.path.exists(path) else None

    def get_playlist(self, playlist_id: int, username: Optional[str] = None) -> PlaylistDTO:
        return _to_dto(self._playlist_row(playlist_id, username))

    def list_playlists(self, username: str) -> List[PlaylistDTO]:
        user = self._require_user(username)
        rows = Playlist.query.filter_by(user_id=user.id).order_by(Playlist.created_at).all()
        return [_to_dto(row) for row in rows]

    def search_public_playlists(self, name: str) -> List[PlaylistDTO]:
        name = (name or '').strip()
        if not name:
            return []
        rows = (
            Playlist.query.filter(Playlist.visibility == 'public', Playlist.name.ilike(f"%{name}%"))
            .order_by(Playlist.updated_at.desc())
            .limit(self.public_search_limit)
            .all()
        )
        return [_to_dto(row) for row in rows]

    # --- playlist mutation ---
    def create_playlist(self, username: str, name: str, *, description: Optional[str] = None,
                        visibility: str = 'private', cover_img_url: Optional[str] = None) -> PlaylistDTO:
        name = (name or '').strip()
        if not name:
            raise ValueError('Playlist name is required')
        if name in RESERVED_PLAYLIST_NAMES:
            raise ReservedPlaylist(f"{name!r} is a reserved playlist name")
        if visibility not in VALID_VISIBILITY:
            visibility = 'private'
        user = self._require_user(username)
        playlist = Playlist(
            user_id=user.id,
            name=name,
            description=(description or '').strip() or None,
            visibility=visibility,
            cover_img_url=cover_img_url,
        )
        db.session.add(playlist)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise Conflict(f"Playlist {name!r} already exists")
        logger.info("Created playlist %s for %s", name, username)
        return _to_dto(playlist)

    def delete_playlist(self, username: str, playlist_id: int) -> None:
        playlist = self._playlist_row(playlist_id, username, write=True)
        if playlist.name in RESERVED_PLAYLIST_NAMES:
            raise ReservedPlaylist(f"{playlist.name!r} cannot be removed")
        db.session.delete(playlist)
        db.session.commit()

    def add_song_to_playlist(self, playlist_id: int, track: Track, username: Optional[str] = None) -> bool:
        """Append ``track``; returns False when its URI is already present."""
        playlist = self._playlist_row(playlist_id, username, write=True)
        if playlist.has_uri(track.uri):
            return False
        self._append(playlist, track)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            return False
        return True

    def remove_song_from_playlist(self, playlist_id: int, track: Track, username: Optional[str] = None) -> bool:
        """Remove ``track`` by URI; removing an absent track is a no-op."""
        playlist = self._playlist_row(playlist_id, username, write=True)
        removed = self._pull(playlist, track.uri)
        db.session.commit()
        return removed

    def _append(self, playlist: Playlist, track: Track) -> None:
        next_position = max((entry.position for entry in playlist.entries), default=-1) + 1
        entry = PlaylistTrack(
            uri=track.uri,
            position=next_position,
            track_snapshot=track.to_document(),
        )
        playlist.entries.append(entry)

    def _pull(self, playlist: Playlist, uri: str) -> bool:
        matches = [entry for entry in playlist.entries if entry.uri == uri]
        for entry in matches:
            # delete-orphan cascade removes the row on flush
            playlist.entries.remove(entry)
        if matches:
            _renumber(playlist.entries)
        return bool(matches)

    # --- ratings ---
    def _rate(self, username: str, track: Track, target: str, opposite: str) -> dict:
        user = self._require_user(username)
        try:
            target_list = self._reserved_playlist(user, target)
            opposite_list = self._reserved_playlist(user, opposite)
            if target_list.has_uri(track.uri):
                # Rating the same track twice toggles it back out
                self._pull(target_list, track.uri)
            else:
                self._append(target_list, track)
                self._pull(opposite_list, track.uri)
            db.session.commit()
        except Exception:
            db.session.rollback()
            logger.error("Failed to update %s for %s", target, username, exc_info=True)
            raise
        return self.rating_status(username, track.uri)

    def like(self, username: str, track: Track) -> dict:
        return self._rate(username, track, LIKED_SONGS, DISLIKED_SONGS)

    def dislike(self, username: str, track: Track) -> dict:
        return self._rate(username, track, DISLIKED_SONGS, LIKED_SONGS)

    def rating_status(self, username: str, uri: str) -> dict:
        return {
            'liked': any(t.uri == uri for t in self.liked_songs(username)),
            'disliked': any(t.uri == uri for t in self.disliked_songs(username)),
        }

    def _reserved_songs(self, username: str, name: str) -> List[Track]:
        user = find_user(username)
        if user is None:
            return []
        playlist = Playlist.query.filter_by(user_id=user.id, name=name).first()
        if playlist is None:
            return []
        return [Track.from_payload(entry.track_snapshot) for entry in playlist.entries]

    def liked_songs(self, username: str) -> List[Track]:
        return self._reserved_songs(username, LIKED_SONGS)

    def disliked_songs(self, username: str) -> List[Track]:
        return self._reserved_songs(username, DISLIKED_SONGS)


__all__ = ["TrackStore"]
