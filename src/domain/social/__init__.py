"""Friend-facing listening state and play statistics."""

from .now_playing import NowPlayingNotifier
from .stats import StatsRecorder

__all__ = ["NowPlayingNotifier", "StatsRecorder"]
