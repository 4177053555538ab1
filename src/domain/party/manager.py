"""Party lifecycle, membership, shared queue and host-only controls."""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Set

from src.domain.errors import Conflict, NotFound, Unauthorized
from src.domain.party.repository import PartyStore
from src.domain.playback.sources import StoredSource
from src.models.dto import PartyDTO, Track
from src.observability.metrics import record_party_conflict, record_party_ended, record_party_started
from src.observability.tracing import span

logger = logging.getLogger(__name__)

HOST_ONLY_PLAYBACK = "Only the host can play songs in a party"


class PartySessionManager:
    def __init__(self, store: PartyStore):
        self._store = store
        self._viewers: Dict[int, Set[str]] = {}
        self._viewers_lock = threading.Lock()

    def _require(self, party_id: int) -> PartyDTO:
        party = self._store.get_party(party_id)
        if party is None:
            raise NotFound(f"Party {party_id} does not exist")
        return party

    # --- lifecycle ---
    def start(self, host_username: str, name: str) -> int:
        """Create a party whose members are the host plus the host's friends.

        Raises Conflict, creating nothing, when any of them is already in a
        party.
        """
        name = (name or '').strip()
        if not name:
            raise ValueError("Party name is required")
        members = [host_username] + [f for f in self._store.friends_of(host_username) if f != host_username]
        with span("party.start", host=host_username, members=len(members)):
            try:
                party_id = self._store.create_party(host_username, members, name)
            except Conflict:
                record_party_conflict()
                logger.info("Party start by %s rejected: a member is already in a party", host_username)
                raise
        record_party_started()
        return party_id

    def end(self, party_id: int, username: str | None = None) -> bool:
        """Delete the party. Ending a missing party is a no-op."""
        party = self._store.get_party(party_id)
        if party is None:
            return False
        if username is not None and not party.is_host(username):
            raise Unauthorized("Only the host can end the party")
        deleted = self._store.delete_party(party_id)
        with self._viewers_lock:
            self._viewers.pop(party_id, None)
        if deleted:
            record_party_ended()
        return deleted

    def leave(self, username: str, party_id: int) -> bool:
        """Drop ``username`` from the party; the party itself remains."""
        self._require(party_id)
        self.close(username, party_id)
        removed = self._store.remove_member(party_id, username)
        if removed:
            logger.info("%s left party %s", username, party_id)
        return removed

    def get(self, party_id: int, username: str | None = None) -> PartyDTO:
        party = self._require(party_id)
        if username is not None and not party.is_member(username):
            raise Unauthorized("Not a member of this party")
        return party

    def parties_for(self, username: str) -> List[PartyDTO]:
        return self._store.get_parties_for_user(username)

    # --- shared queue ---
    def add_song(self, party_id: int, track: Track) -> PartyDTO:
        party = self._require(party_id)
        if party.dj_mode:
            if not track.has_preview:
                raise Conflict("DJ mode needs a preview for every song")
            track = track.model_copy(update={"dj": True})
        return self._store.add_song(party_id, track)

    def remove_song(self, party_id: int, track: Track) -> PartyDTO:
        self._require(party_id)
        return self._store.remove_song(party_id, track)

    def toggle_dj_mode(self, party_id: int, username: str) -> PartyDTO:
        """Flip DJ mode for every song; refuses if any song has no preview."""
        party = self._require(party_id)
        if not party.is_host(username):
            raise Unauthorized("Only the host can change DJ mode")
        enabled = not party.dj_mode
        if enabled:
            missing = [song.name for song in party.songs if not song.has_preview]
            if missing:
                raise Conflict(f"No preview available for: {', '.join(missing)}")
        logger.info("DJ mode %s for party %s", "enabled" if enabled else "disabled", party_id)
        return self._store.set_dj_mode(party_id, enabled)

    # --- viewing state ---
    def open(self, username: str, party_id: int) -> PartyDTO:
        party = self.get(party_id, username)
        with self._viewers_lock:
            self._viewers.setdefault(party_id, set()).add(username)
        return party

    def close(self, username: str, party_id: int) -> None:
        with self._viewers_lock:
            viewers = self._viewers.get(party_id)
            if viewers is None:
                return
            viewers.discard(username)
            if not viewers:
                del self._viewers[party_id]

    def is_viewing(self, username: str, party_id: int) -> bool:
        with self._viewers_lock:
            return username in self._viewers.get(party_id, set())

    def viewers(self, party_id: int) -> Set[str]:
        with self._viewers_lock:
            return set(self._viewers.get(party_id, set()))

    # --- playback coordination ---
    def start_playback(self, engine, party_id: int, username: str) -> bool:
        """Play the party's first song on the host's engine."""
        party = self.get(party_id, username)
        if not party.is_host(username):
            raise Unauthorized(HOST_ONLY_PLAYBACK)
        if not party.songs:
            raise NotFound("The party has no songs")
        return engine.play(party.songs[0], StoredSource.from_party(party), reason="party")

    def refresh_playback(self, engine, party_id: int) -> PartyDTO:
        """Re-read the party and swap it in as the engine's source."""
        party = self._require(party_id)
        engine.replace_source(StoredSource.from_party(party))
        return party


__all__ = ["PartySessionManager", "HOST_ONLY_PLAYBACK"]
