from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from sqlalchemy.exc import IntegrityError

from src.database.db_manager import Party, PartyMember, PartySong, db, find_user
from src.domain.errors import Conflict, NotFound
from src.models.dto import PartyDTO, Track

logger = logging.getLogger(__name__)


def _to_dto(party: Party) -> PartyDTO:
    return PartyDTO(
        id=party.id,
        host=party.host.username if party.host else '',
        name=party.name,
        people=party.people,
        songs=[Track.from_payload(song.track_snapshot) for song in party.songs],
        dj_mode=party.dj_mode,
    )


class PartyStore:
    """Interface for persisted party documents."""

    def create_party(self, host: str, members: Sequence[str], name: str) -> int:  # pragma: no cover - interface
        raise NotImplementedError

    def delete_party(self, party_id: int) -> bool:  # pragma: no cover - interface
        raise NotImplementedError

    def get_party(self, party_id: int) -> Optional[PartyDTO]:  # pragma: no cover - interface
        raise NotImplementedError

    def get_parties_for_user(self, username: str) -> List[PartyDTO]:  # pragma: no cover - interface
        raise NotImplementedError

    def add_song(self, party_id: int, track: Track) -> PartyDTO:  # pragma: no cover - interface
        raise NotImplementedError

    def remove_song(self, party_id: int, track: Track) -> PartyDTO:  # pragma: no cover - interface
        raise NotImplementedError

    def remove_member(self, party_id: int, username: str) -> bool:  # pragma: no cover - interface
        raise NotImplementedError

    def set_dj_mode(self, party_id: int, enabled: bool) -> PartyDTO:  # pragma: no cover - interface
        raise NotImplementedError

    def friends_of(self, username: str) -> List[str]:  # pragma: no cover - interface
        raise NotImplementedError


class SqlPartyStore(PartyStore):
    def _party_row(self, party_id: int) -> Party:
        party = db.session.get(Party, party_id)
        if party is None:
            raise NotFound(f"Party {party_id} does not exist")
        return party

    def friends_of(self, username: str) -> List[str]:
        user = find_user(username)
        if user is None:
            raise NotFound(f"User {username!r} does not exist")
        return user.friend_usernames

    def create_party(self, host: str, members: Sequence[str], name: str) -> int:
        """Persist a party; Conflict when any member already belongs to one."""
        host_user = find_user(host)
        if host_user is None:
            raise NotFound(f"User {host!r} does not exist")

        members = list(dict.fromkeys(members))
        busy = [
            row.username
            for row in PartyMember.query.filter(PartyMember.username.in_(members)).all()
        ]
        if busy:
            raise Conflict(f"Already in a party: {', '.join(sorted(busy))}")

        party = Party(host_id=host_user.id, name=name)
        party.members = [PartyMember(username=member) for member in members]
        db.session.add(party)
        try:
            db.session.commit()
        except IntegrityError:
            # Lost a race with another start for an overlapping group
            db.session.rollback()
            raise Conflict("A member joined another party while this one was being created")
        logger.info("Created party %s (%s) hosted by %s with %d members", party.id, name, host, len(members))
        return party.id

    def delete_party(self, party_id: int) -> bool:
        party = db.session.get(Party, party_id)
        if party is None:
            return False
        db.session.delete(party)
        db.session.commit()
        logger.info("Deleted party %s", party_id)
        return True

    def get_party(self, party_id: int) -> Optional[PartyDTO]:
        party = db.session.get(Party, party_id)
        return _to_dto(party) if party is not None else None

    def get_parties_for_user(self, username: str) -> List[PartyDTO]:
        rows = (
            Party.query.join(PartyMember)
            .filter(PartyMember.username == username)
            .order_by(Party.created_at.desc())
            .all()
        )
        return [_to_dto(row) for row in rows]

    def add_song(self, party_id: int, track: Track) -> PartyDTO:
        party = self._party_row(party_id)
        position = max((song.position for song in party.songs), default=-1) + 1
        party.songs.append(PartySong(uri=track.uri, position=position, track_snapshot=track.to_document()))
        db.session.commit()
        return _to_dto(party)

    def remove_song(self, party_id: int, track: Track) -> PartyDTO:
        party = self._party_row(party_id)
        remaining = [song for song in party.songs if song.uri != track.uri]
        if len(remaining) != len(party.songs):
            party.songs = remaining
            for index, song in enumerate(remaining):
                song.position = index
            db.session.commit()
        return _to_dto(party)

    def remove_member(self, party_id: int, username: str) -> bool:
        party = self._party_row(party_id)
        member = next((m for m in party.members if m.username == username), None)
        if member is None:
            return False
        party.members.remove(member)
        db.session.commit()
        return True

    def set_dj_mode(self, party_id: int, enabled: bool) -> PartyDTO:
        party = self._party_row(party_id)
        party.dj_mode = enabled
        for song in party.songs:
            # Reassign so the JSON column change is detected
            song.track_snapshot = {**song.track_snapshot, 'dj': enabled}
        db.session.commit()
        return _to_dto(party)


__all__ = ["PartyStore", "SqlPartyStore"]
