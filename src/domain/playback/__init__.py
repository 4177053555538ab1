"""Client playback: engine state machine, playlist sources and audio handles."""

from .audio import LocalAudioHandle, StreamingAudioHandle
from .engine import PlaybackEngine, PlaybackSession, PlaybackState
from .scheduler import ThreadingScheduler
from .sources import AdHocQueue, RecommendationSource, StoredSource

__all__ = [
    "PlaybackEngine",
    "PlaybackSession",
    "PlaybackState",
    "LocalAudioHandle",
    "StreamingAudioHandle",
    "ThreadingScheduler",
    "StoredSource",
    "AdHocQueue",
    "RecommendationSource",
]
