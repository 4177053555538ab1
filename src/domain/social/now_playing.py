import logging
from typing import Dict, Optional

from src.database.db_manager import db, find_user
from src.models.dto import Track

logger = logging.getLogger(__name__)


class NowPlayingNotifier:
    """Publishes what a user is listening to so friends can see it.

    Best-effort: failures are logged and swallowed, playback never waits on
    this.
    """

    def set_listening_to(self, username: str, track: Optional[Track]) -> bool:
        try:
            user = find_user(username)
            if user is None:
                logger.warning("Cannot update now-playing for unknown user %s", username)
                return False
            user.currently_listening = track.to_document() if track is not None else {}
            db.session.commit()
            return True
        except Exception as exc:
            db.session.rollback()
            logger.warning("Failed to update now-playing for %s: %s", username, exc)
            return False

    def friends_listening(self, username: str) -> Dict[str, dict]:
        """Map of friend username to the track document they are playing."""
        user = find_user(username)
        if user is None:
            return {}
        return {
            friend.username: friend.currently_listening
            for friend in user.friends
            if friend.currently_listening
        }


__all__ = ["NowPlayingNotifier"]
