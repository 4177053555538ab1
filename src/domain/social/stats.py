import logging
from typing import Dict, List

from src.database.db_manager import ListeningStat, db, find_user
from src.models.dto import Track

logger = logging.getLogger(__name__)


class StatsRecorder:
    """Per-user play counters for artists, genres and tracks."""

    def _bump(self, user_id: int, kind: str, key: str, name: str, cover_img_url=None) -> None:
        stat = ListeningStat.query.filter_by(user_id=user_id, kind=kind, key=key).first()
        if stat is None:
            stat = ListeningStat(user_id=user_id, kind=kind, key=key, name=name, count=0)
            db.session.add(stat)
        stat.count = (stat.count or 0) + 1
        if cover_img_url:
            stat.cover_img_url = cover_img_url

    def record_play(self, username: str, track: Track) -> bool:
        user = find_user(username)
        if user is None:
            logger.warning("Cannot record stats for unknown user %s", username)
            return False
        try:
            for artist in track.artists:
                image = artist.images[0].get('url') if artist.images else None
                self._bump(user.id, 'artist', artist.id or artist.name, artist.name, image)
            for genre in track.genre:
                self._bump(user.id, 'genre', genre.lower(), genre)
            self._bump(user.id, 'track', track.uri, track.name, track.cover_img_url)
            db.session.commit()
        except Exception as exc:
            db.session.rollback()
            logger.warning("Failed to record play of %s for %s: %s", track.uri, username, exc)
            return False
        return True

    def stats_for(self, username: str, limit: int = 10) -> Dict[str, List[dict]]:
        """Top counters per kind, most played first."""
        result: Dict[str, List[dict]] = {'artist': [], 'genre': [], 'track': []}
        user = find_user(username)
        if user is None:
            return result
        for kind in result:
            rows = (
                ListeningStat.query.filter_by(user_id=user.id, kind=kind)
                .order_by(ListeningStat.count.desc(), ListeningStat.name)
                .limit(limit)
                .all()
            )
            result[kind] = [row.to_dict() for row in rows]
        return result


__all__ = ["StatsRecorder"]
