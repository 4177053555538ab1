"""Audio handles owned by the playback engine.

Exactly one handle is active per session. The engine releases the current
handle before acquiring the next one, and a streaming handle owns exactly one
``playback_update`` registration which it removes on release.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from src.models.dto import Track

logger = logging.getLogger(__name__)

PLAYBACK_UPDATE = "playback_update"

PlaybackListener = Callable[[dict], None]


class StreamingController:
    """Interface of the provider's browser playback controller."""

    def load_uri(self, uri: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def play(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def pause(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def resume(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def seek(self, position_ms: int) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def play_from_start(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def add_listener(self, event: str, callback: PlaybackListener) -> Callable[[], None]:  # pragma: no cover - interface
        """Register ``callback`` for ``event``; returns a function that removes it."""
        raise NotImplementedError


class LocalPlayer:
    """Interface of a player for a local file or preview URL."""

    def play(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def pause(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def resume(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def seek(self, position_ms: int) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def stop(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError


LocalPlayerFactory = Callable[[str], LocalPlayer]


class AudioHandle:
    def start(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def pause(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def resume(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def seek(self, position_ms: int) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def restart(self, playing: bool = True) -> None:  # pragma: no cover - interface
        """Rewind to 0; audio keeps running only when ``playing`` is set."""
        raise NotImplementedError

    def release(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class LocalAudioHandle(AudioHandle):
    """Plays an uploaded file or, in DJ mode, the track's preview clip."""

    def __init__(self, player_factory: LocalPlayerFactory, source_url: str):
        self.source_url = source_url
        self._player = player_factory(source_url)
        self._released = False

    def start(self) -> None:
        self._player.play()

    def pause(self) -> None:
        self._player.pause()

    def resume(self) -> None:
        self._player.resume()

    def seek(self, position_ms: int) -> None:
        self._player.seek(position_ms)

    def restart(self, playing: bool = True) -> None:
        self._player.seek(0)
        if playing:
            self._player.play()
        else:
            self._player.pause()

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._player.stop()


class StreamingAudioHandle(AudioHandle):
    def __init__(self, controller: StreamingController, uri: str, on_update: PlaybackListener):
        self.uri = uri
        self._controller = controller
        self._on_update = on_update
        self._remove_listener: Optional[Callable[[], None]] = None

    @property
    def listening(self) -> bool:
        return self._remove_listener is not None

    def start(self) -> None:
        if self._remove_listener is None:
            self._remove_listener = self._controller.add_listener(PLAYBACK_UPDATE, self._on_update)
        self._controller.load_uri(self.uri)
        self._controller.play()

    def pause(self) -> None:
        self._controller.pause()

    def resume(self) -> None:
        self._controller.resume()

    def seek(self, position_ms: int) -> None:
        self._controller.seek(position_ms)

    def restart(self, playing: bool = True) -> None:
        self._controller.play_from_start()
        if not playing:
            self._controller.pause()

    def release(self) -> None:
        remove, self._remove_listener = self._remove_listener, None
        if remove is None:
            return
        try:
            self._controller.pause()
        finally:
            remove()


def local_source_url(track: Track) -> Optional[str]:
    """URL the local player should open, or None for provider streaming."""
    if track.is_local:
        return track.uri
    if track.dj and track.preview_url:
        return track.preview_url
    return None


__all__ = [
    "PLAYBACK_UPDATE",
    "StreamingController",
    "LocalPlayer",
    "LocalPlayerFactory",
    "AudioHandle",
    "LocalAudioHandle",
    "StreamingAudioHandle",
    "local_source_url",
]
