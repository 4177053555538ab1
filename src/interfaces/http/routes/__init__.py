"""Route blueprints exposed via Flask."""

from .parties import party_bp
from .playlist import playlist_bp
from .ratings import rating_bp
from .tracks import track_bp
from .listening import listening_bp
from .health import health_bp

__all__ = [
    "party_bp",
    "playlist_bp",
    "rating_bp",
    "track_bp",
    "listening_bp",
    "health_bp",
]
