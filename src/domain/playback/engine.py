"""Single-client playback state machine.

States run ``Idle -> Loading -> Playing <-> Paused -> Ended``; ``Ended``
immediately resolves the next track, falling back to recommendations when
the queue is exhausted, or settles back in ``Idle``.

Progress ticks are scheduled one at a time. Every scheduled tick carries the
generation it was scheduled for; ``play``, ``pause`` and ``stop`` bump the
generation so a tick that was already in flight for an older track is
discarded instead of advancing the new one.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from config import Config
from src.domain.playback.audio import (
    AudioHandle,
    LocalAudioHandle,
    LocalPlayerFactory,
    StreamingAudioHandle,
    StreamingController,
    local_source_url,
)
from src.domain.playback.scheduler import ScheduledCall, Scheduler, ThreadingScheduler
from src.domain.playback.sources import (
    AdHocQueue,
    PlaylistSource,
    RecommendationSource,
    is_synthetic,
)
from src.models.dto import Track
from src.observability.metrics import record_playback_transition
from src.observability.tracing import span

logger = logging.getLogger(__name__)

NO_ACTIVE_TRACK = "no active track"


class PlaybackState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"
    ENDED = "ended"


@dataclass
class PlaybackSession:
    """Per-client playback state; lives in memory only."""

    username: str
    current_track: Optional[Track] = None
    source: Optional[PlaylistSource] = None
    current_time_ms: int = 0
    state: PlaybackState = PlaybackState.IDLE
    can_loop: bool = False
    lyrics: Optional[str] = None
    last_error: Optional[str] = None

    @property
    def is_playing(self) -> bool:
        return self.state == PlaybackState.PLAYING

    @property
    def effective_duration_ms(self) -> int:
        return self.current_track.effective_duration_ms if self.current_track else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "username": self.username,
            "state": self.state.value,
            "track": self.current_track.to_document() if self.current_track else None,
            "source": getattr(self.source, "name", None),
            "current_time_ms": self.current_time_ms,
            "duration_ms": self.effective_duration_ms,
            "can_loop": self.can_loop,
            "lyrics": self.lyrics,
            "last_error": self.last_error,
        }


class PlaybackEngine:
    def __init__(
        self,
        session: PlaybackSession,
        *,
        controller: StreamingController,
        local_player_factory: LocalPlayerFactory,
        recommendations,
        notifier=None,
        stats=None,
        metadata=None,
        lyrics=None,
        scheduler: Optional[Scheduler] = None,
        tick_ms: Optional[int] = None,
        previous_threshold_ms: Optional[int] = None,
        stats_threshold: Optional[float] = None,
    ):
        self.session = session
        self._controller = controller
        self._local_player_factory = local_player_factory
        self._recommendations = recommendations
        self._notifier = notifier
        self._stats = stats
        self._metadata = metadata
        self._lyrics = lyrics
        self._scheduler = scheduler or ThreadingScheduler()
        self.tick_ms = tick_ms or Config.PLAYBACK_TICK_MS
        self.previous_threshold_ms = (
            Config.PREVIOUS_RESTART_THRESHOLD_MS if previous_threshold_ms is None else previous_threshold_ms
        )
        self.stats_threshold = Config.STATS_THRESHOLD_RATIO if stats_threshold is None else stats_threshold

        self._lock = threading.RLock()
        self._generation = 0
        self._tick_call: Optional[ScheduledCall] = None
        self._sleep_call: Optional[ScheduledCall] = None
        self._audio: Optional[AudioHandle] = None

    # --- audio / schedule plumbing ---
    def _cancel_tick(self) -> None:
        self._generation += 1
        call, self._tick_call = self._tick_call, None
        if call is not None:
            call.cancel()

    def _schedule_tick(self) -> None:
        token = self._generation
        self._tick_call = self._scheduler.call_later(self.tick_ms / 1000.0, lambda: self.tick(token))

    def _release_audio(self) -> None:
        handle, self._audio = self._audio, None
        if handle is None:
            return
        try:
            handle.release()
        except Exception as exc:
            logger.warning("Releasing audio handle for %s failed: %s", self.session.username, exc)

    def _acquire_audio(self, track: Track) -> AudioHandle:
        url = local_source_url(track)
        if url is not None:
            return LocalAudioHandle(self._local_player_factory, url)
        return StreamingAudioHandle(self._controller, track.uri, self.handle_playback_update)

    def _notify(self, track: Optional[Track]) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier.set_listening_to(self.session.username, track)
        except Exception as exc:
            logger.warning("Now-playing update for %s failed: %s", self.session.username, exc)

    def _settle_idle(self, error: Optional[str] = None) -> None:
        self._cancel_tick()
        self._release_audio()
        self.session.state = PlaybackState.IDLE
        self.session.last_error = error
        if error:
            logger.warning("Playback for %s stopped: %s", self.session.username, error)

    def _report(self, error: str) -> bool:
        self.session.last_error = error
        logger.info("Playback request for %s ignored: %s", self.session.username, error)
        return False

    def _enrich(self, track: Track) -> None:
        if self._metadata is not None:
            try:
                self._metadata.enrich_track(track)
            except Exception as exc:
                logger.warning("Metadata enrichment failed for %s: %s", track.uri, exc)
        if self._lyrics is not None:
            artist = track.primary_artist
            self.session.lyrics = self._lyrics.lyrics_or_placeholder(artist.name if artist else None, track.name)

    # --- operations ---
    def play(self, track: Track, source: Optional[PlaylistSource] = None, *, reason: str = "play") -> bool:
        """Stop whatever is playing and start ``track`` from position 0."""
        with self._lock:
            self._cancel_tick()
            self._release_audio()

            track = track.model_copy(deep=True)
            session = self.session
            session.current_track = track
            session.source = source
            session.current_time_ms = 0
            session.lyrics = None
            session.last_error = None
            session.state = PlaybackState.LOADING

            self._enrich(track)

            handle = self._acquire_audio(track)
            self._audio = handle
            try:
                handle.start()
            except Exception as exc:
                logger.error("Could not start %s for %s", track.uri, session.username, exc_info=True)
                self._settle_idle(f"could not start playback: {exc}")
                return False

            session.state = PlaybackState.PLAYING
            record_playback_transition(reason)
            self._notify(track)
            self._schedule_tick()
            logger.debug("Playing %s for %s (source=%s)", track.uri, session.username, getattr(source, "name", None))
            return True

    def pause(self) -> bool:
        with self._lock:
            if self.session.current_track is None or self._audio is None:
                return self._report(NO_ACTIVE_TRACK)
            if self.session.state != PlaybackState.PLAYING:
                return True
            self._cancel_tick()
            self._audio.pause()
            self.session.state = PlaybackState.PAUSED
            return True

    def resume(self) -> bool:
        with self._lock:
            track = self.session.current_track
            if track is None:
                return self._report(NO_ACTIVE_TRACK)
            if self.session.state in (PlaybackState.IDLE, PlaybackState.ENDED) or self._audio is None:
                # Re-pressing play after playback settled restarts the track
                return self.play(track, self.session.source, reason="retry")
            if self.session.state != PlaybackState.PAUSED:
                return True
            self._audio.resume()
            self.session.state = PlaybackState.PLAYING
            self._schedule_tick()
            return True

    def seek(self, position_ms: int) -> bool:
        with self._lock:
            if self.session.current_track is None or self._audio is None:
                return self._report(NO_ACTIVE_TRACK)
            position = max(0, min(int(position_ms), self.session.effective_duration_ms))
            self.session.current_time_ms = position
            self._audio.seek(position)
            return True

    def set_loop(self, enabled: bool) -> None:
        with self._lock:
            self.session.can_loop = bool(enabled)

    def tick(self, token: int) -> None:
        """Advance progress by one period or end the track."""
        with self._lock:
            session = self.session
            if token != self._generation or session.state != PlaybackState.PLAYING or session.current_track is None:
                logger.debug("Discarding stale tick %s for %s", token, session.username)
                return
            self._tick_call = None
            duration = session.effective_duration_ms
            if session.current_time_ms >= duration:
                self._track_ended()
                return
            session.current_time_ms = min(session.current_time_ms + self.tick_ms, duration)
            self._maybe_record_stats()
            self._schedule_tick()

    def handle_playback_update(self, event: Dict[str, Any]) -> None:
        """Apply a ``playback_update`` from the streaming controller."""
        with self._lock:
            session = self.session
            if session.current_track is None or session.state in (PlaybackState.IDLE, PlaybackState.ENDED):
                return
            data = event.get("data", event) if isinstance(event, dict) else {}
            duration = session.effective_duration_ms
            position = data.get("positionMs", data.get("position"))
            if position is not None:
                session.current_time_ms = max(0, min(int(position), duration))

            if data.get("isPaused") and session.state == PlaybackState.PLAYING:
                self._cancel_tick()
                session.state = PlaybackState.PAUSED
            elif data.get("isPaused") is False and session.state == PlaybackState.PAUSED:
                session.state = PlaybackState.PLAYING
                self._schedule_tick()

            self._maybe_record_stats()
            if duration and session.current_time_ms >= duration:
                self._track_ended()

    def _maybe_record_stats(self) -> None:
        track = self.session.current_track
        duration = self.session.effective_duration_ms
        if self._stats is None or track is None or track.stats_updated or duration <= 0:
            return
        if self.session.current_time_ms / duration <= self.stats_threshold:
            return
        try:
            recorded = self._stats.record_play(self.session.username, track)
        except Exception as exc:
            logger.warning("Recording stats for %s failed: %s", self.session.username, exc)
            return
        if recorded:
            track.stats_updated = True

    def _track_ended(self) -> None:
        self._cancel_tick()
        self.session.state = PlaybackState.ENDED
        record_playback_transition("ended")
        self.resolve_next(self.session.source)

    # --- next / previous ---
    def next(self) -> bool:
        return self.resolve_next(self.session.source)

    def previous(self) -> bool:
        return self.resolve_previous(self.session.source)

    def resolve_next(self, source: Optional[PlaylistSource]) -> bool:
        with self._lock:
            track = self.session.current_track
            if source is None:
                return self._fallback_to_recommendations()
            if is_synthetic(source) and (not len(source) or (source.is_last(track) and not self.session.can_loop)):
                return self._fallback_to_recommendations()

            upcoming = source.track_at(source.index_of(track) + 1)
            if upcoming is not None:
                return self.play(upcoming, source, reason="next")
            if self.session.can_loop and len(source):
                return self.play(source.track_at(0), source, reason="loop")

            logger.info("Reached the end of %s for %s", source.name, self.session.username)
            self._settle_idle()
            self.session.current_time_ms = 0
            return False

    def resolve_previous(self, source: Optional[PlaylistSource]) -> bool:
        with self._lock:
            session = self.session
            track = session.current_track
            if track is None:
                return self._report(NO_ACTIVE_TRACK)

            streamed = not (track.is_local or track.dj)
            if streamed and session.current_time_ms < self.previous_threshold_ms and source is not None:
                index = source.index_of(track)
                if index > 0:
                    return self.play(source.track_at(index - 1), source, reason="previous")

            session.current_time_ms = 0
            if self._audio is None:
                return self.play(track, source, reason="restart")
            # A paused track stays paused, rewound to 0
            playing = session.state != PlaybackState.PAUSED
            self._cancel_tick()
            self._audio.restart(playing=playing)
            if playing:
                session.state = PlaybackState.PLAYING
                self._schedule_tick()
            return True

    def _fallback_to_recommendations(self) -> bool:
        session = self.session
        track = session.current_track
        self._notify(None)
        if track is not None:
            track.stats_updated = False

        seed_track_id = track.id if track is not None and not track.is_local else None
        seed_genre = track.genre[0] if track is not None and track.genre else None
        artist = track.primary_artist if track is not None else None
        seed_artist_id = artist.id if artist is not None else None

        with span("playback.recommendation_fallback", username=session.username, seed_track=seed_track_id):
            try:
                candidates = self._recommendations.get_recommendations(seed_track_id, seed_genre, seed_artist_id)
            except Exception as exc:
                self._settle_idle(str(exc) or "recommendation unavailable")
                return False
        if not candidates:
            self._settle_idle("recommendation unavailable")
            return False

        logger.info("No songs in queue for %s, playing recommendation", session.username)
        source = RecommendationSource(tracks=list(candidates))
        return self.play(candidates[0], source, reason="recommendation")

    # --- queue management ---
    def enqueue(self, track: Track) -> PlaylistSource:
        """Queue ``track`` after the current source's songs."""
        with self._lock:
            source = self.session.source
            tracks = list(source.tracks) if source is not None else []
            tracks.append(track)
            self.session.source = AdHocQueue(tracks=tracks)
            return self.session.source

    def replace_source(self, source: Optional[PlaylistSource]) -> None:
        """Swap the source without interrupting the current track."""
        with self._lock:
            self.session.source = source

    def set_sleep_timer(self, minutes: Optional[float]) -> None:
        """Pause playback after ``minutes``; None or 0 cancels the timer."""
        with self._lock:
            call, self._sleep_call = self._sleep_call, None
            if call is not None:
                call.cancel()
            if not minutes or minutes <= 0 or math.isnan(minutes):
                return
            self._sleep_call = self._scheduler.call_later(minutes * 60.0, self._sleep_expired)

    def _sleep_expired(self) -> None:
        with self._lock:
            self._sleep_call = None
            if self.session.state == PlaybackState.PLAYING:
                logger.info("Sleep timer expired for %s", self.session.username)
                self.pause()

    def stop(self) -> None:
        with self._lock:
            self.set_sleep_timer(None)
            had_track = self.session.current_track is not None
            self._settle_idle()
            self.session.current_track = None
            self.session.current_time_ms = 0
            self.session.lyrics = None
            if had_track:
                record_playback_transition("stop")
                self._notify(None)


__all__ = ["PlaybackEngine", "PlaybackSession", "PlaybackState", "NO_ACTIVE_TRACK"]
