import pytest

from src.domain.errors import ExternalServiceUnavailable
from src.domain.playback import (
    AdHocQueue,
    PlaybackEngine,
    PlaybackSession,
    PlaybackState,
    RecommendationSource,
    StoredSource,
)
from tests.support.stubs import (
    FakeStreamingController,
    LocalPlayerFactoryStub,
    ManualScheduler,
    NotifierStub,
    RecommendationStub,
    StatsStub,
    make_track,
)

TICK = 500


class Harness:
    def __init__(self, recommendations=None, notifier=None, stats=None, controller=None):
        self.controller = controller or FakeStreamingController()
        self.players = LocalPlayerFactoryStub()
        self.scheduler = ManualScheduler()
        self.recommendations = recommendations or RecommendationStub()
        self.notifier = notifier or NotifierStub()
        self.stats = stats or StatsStub()
        self.session = PlaybackSession(username="alice")
        self.engine = PlaybackEngine(
            self.session,
            controller=self.controller,
            local_player_factory=self.players,
            recommendations=self.recommendations,
            notifier=self.notifier,
            stats=self.stats,
            scheduler=self.scheduler,
            tick_ms=TICK,
            previous_threshold_ms=2000,
            stats_threshold=0.1,
        )

    def tick(self, times=1):
        self.scheduler.run_pending(times)


@pytest.fixture
def harness():
    return Harness()


def _playlist(*tracks):
    return StoredSource(playlist_id=1, name="Road trip", tracks=list(tracks))


@pytest.mark.unit
def test_effective_duration_uses_preview_window_only_for_dj_tracks():
    assert make_track(1, duration_ms=185000).effective_duration_ms == 185000
    assert make_track(1, duration_ms=185000, dj=True).effective_duration_ms == 30000
    assert make_track(1, duration_ms=1000, dj=True).effective_duration_ms == 30000


@pytest.mark.unit
def test_play_starts_streaming_track_and_notifies(harness):
    track = make_track(1)

    assert harness.engine.play(track, _playlist(track)) is True

    assert harness.session.state == PlaybackState.PLAYING
    assert harness.session.current_track.uri == track.uri
    assert harness.session.current_time_ms == 0
    assert harness.controller.names() == ["load_uri", "play"]
    assert harness.notifier.updates == [("alice", track.uri)]
    assert len(harness.scheduler.pending) == 1


@pytest.mark.unit
def test_local_and_dj_tracks_use_local_player(harness):
    local = make_track(1, is_local=True, uri="uploads/a.mp3")
    dj = make_track(2, dj=True, preview_url="https://p.example/2.mp3")

    harness.engine.play(local)
    harness.engine.play(dj)

    assert [p.url for p in harness.players.players] == ["uploads/a.mp3", "https://p.example/2.mp3"]
    assert harness.players.players[0].stopped is True
    assert harness.controller.calls == []


@pytest.mark.unit
def test_ticks_never_overshoot_and_next_tick_ends_track():
    stub = RecommendationStub(error=ExternalServiceUnavailable("down"))
    h = Harness(recommendations=stub)
    track = make_track(1, duration_ms=1250)
    h.engine.play(track, _playlist(track))

    # ceil(1250 / 500) == 3 ticks reach the end without passing it
    for expected in (500, 1000, 1250):
        h.tick()
        assert h.session.current_time_ms == expected
        assert h.session.current_time_ms <= track.duration_ms
        assert h.session.state == PlaybackState.PLAYING

    h.tick()
    assert h.session.current_time_ms <= track.duration_ms
    assert h.session.state == PlaybackState.IDLE


@pytest.mark.unit
def test_dj_track_ends_after_preview_window(harness):
    track = make_track(1, duration_ms=200000, dj=True, preview_url="https://p/1.mp3")
    nxt = make_track(2)
    playlist = _playlist(track, nxt)
    harness.engine.play(track, playlist)

    harness.tick(30000 // TICK)
    assert harness.session.current_time_ms == 30000
    harness.tick()

    assert harness.session.current_track.uri == nxt.uri
    assert harness.session.current_time_ms == 0


@pytest.mark.unit
def test_stale_tick_from_previous_track_is_discarded(harness):
    first, second = make_track(1), make_track(2)
    harness.engine.play(first)
    stale = harness.scheduler.calls[0]

    harness.engine.play(second)
    assert stale.cancelled is True

    # Even if the timer fires anyway it must not advance the new track
    stale.callback()
    assert harness.session.current_time_ms == 0
    assert harness.session.current_track.uri == second.uri


@pytest.mark.unit
def test_sequential_plays_leave_exactly_one_listener(harness):
    for n in range(1, 6):
        harness.engine.play(make_track(n))
        assert harness.controller.listener_count() == 1


@pytest.mark.unit
def test_switching_tracks_pauses_previous_handle_before_loading(harness):
    harness.engine.play(make_track(1))
    harness.engine.play(make_track(2))

    assert harness.controller.names() == ["load_uri", "play", "pause", "load_uri", "play"]


@pytest.mark.unit
def test_listener_removed_even_when_pause_emits_update():
    h = Harness(controller=FakeStreamingController(emit_on_pause=True))
    for n in range(1, 4):
        h.engine.play(make_track(n))
    assert h.controller.listener_count() == 1
    assert h.session.state == PlaybackState.PLAYING


@pytest.mark.unit
def test_pause_and_resume_toggle_state_and_tick_schedule(harness):
    harness.engine.play(make_track(1))
    harness.tick()

    assert harness.engine.pause() is True
    assert harness.session.state == PlaybackState.PAUSED
    assert harness.scheduler.pending == []

    assert harness.engine.resume() is True
    assert harness.session.state == PlaybackState.PLAYING
    assert len(harness.scheduler.pending) == 1
    assert harness.session.current_time_ms == TICK


@pytest.mark.unit
def test_pause_without_track_is_reported_not_raised(harness):
    assert harness.engine.pause() is False
    assert harness.session.last_error == "no active track"
    assert harness.engine.seek(1000) is False
    assert harness.session.state == PlaybackState.IDLE


@pytest.mark.unit
def test_seek_clamps_to_effective_duration(harness):
    harness.engine.play(make_track(1, duration_ms=10000))

    harness.engine.seek(25000)
    assert harness.session.current_time_ms == 10000
    harness.engine.seek(-5)
    assert harness.session.current_time_ms == 0
    assert ("seek", 10000) in harness.controller.calls


@pytest.mark.unit
def test_resolve_next_plays_following_track(harness):
    a, b = make_track(1), make_track(2)
    playlist = _playlist(a, b)
    harness.engine.play(a, playlist)

    harness.engine.next()

    assert harness.session.current_track.uri == b.uri
    assert harness.session.source is playlist


@pytest.mark.unit
def test_stored_playlist_end_stops_without_loop_and_wraps_with_loop(harness):
    a, b = make_track(1), make_track(2)
    playlist = _playlist(a, b)

    harness.engine.play(b, playlist)
    harness.engine.next()
    assert harness.session.state == PlaybackState.IDLE
    assert harness.recommendations.requests == []

    harness.engine.set_loop(True)
    harness.engine.play(b, playlist)
    harness.engine.next()
    assert harness.session.current_track.uri == a.uri
    assert harness.session.state == PlaybackState.PLAYING


@pytest.mark.unit
def test_queue_at_last_index_falls_back_to_recommendations():
    recs = [make_track(10), make_track(11)]
    h = Harness(recommendations=RecommendationStub(tracks=recs))
    a, b = make_track(1), make_track(2)
    queue = AdHocQueue(tracks=[a, b])
    h.engine.play(b, queue)

    h.engine.next()

    assert h.recommendations.requests == [("t2", "pop", "a2")]
    assert h.session.current_track.uri == recs[0].uri
    assert isinstance(h.session.source, RecommendationSource)
    assert h.session.source.name == "Recommendation"
    # now-playing cleared before the recommended track is announced
    assert h.notifier.updates[-2:] == [("alice", None), ("alice", recs[0].uri)]


@pytest.mark.unit
def test_queue_at_last_index_with_loop_plays_first_track(harness):
    a, b = make_track(1), make_track(2)
    harness.engine.set_loop(True)
    harness.engine.play(b, AdHocQueue(tracks=[a, b]))

    harness.engine.next()

    assert harness.session.current_track.uri == a.uri
    assert harness.recommendations.requests == []


@pytest.mark.unit
def test_no_source_requests_recommendation_and_idles_on_failure():
    h = Harness(recommendations=RecommendationStub(error=ExternalServiceUnavailable("recommendation unavailable")))
    track = make_track(1)
    h.engine.play(track)

    assert h.engine.next() is False

    assert h.session.state == PlaybackState.IDLE
    assert h.session.last_error == "recommendation unavailable"
    assert h.session.current_track.stats_updated is False
    assert h.scheduler.pending == []
    assert h.controller.listener_count() == 0


@pytest.mark.unit
def test_local_track_recommendation_seed_skips_track_id():
    h = Harness(recommendations=RecommendationStub(tracks=[make_track(9)]))
    h.engine.play(make_track(1, is_local=True, uri="uploads/x.mp3", genre=["local"]))

    h.engine.next()

    assert h.recommendations.requests == [(None, "local", "a1")]


@pytest.mark.unit
def test_previous_within_threshold_plays_previous_track(harness):
    a, b = make_track(1), make_track(2)
    playlist = _playlist(a, b)
    harness.engine.play(b, playlist)
    harness.tick(3)
    assert harness.session.current_time_ms == 1500

    harness.engine.previous()

    assert harness.session.current_track.uri == a.uri
    assert harness.session.current_time_ms == 0


@pytest.mark.unit
def test_previous_after_threshold_restarts_current_track(harness):
    a, b = make_track(1), make_track(2)
    playlist = _playlist(a, b)
    harness.engine.play(b, playlist)
    harness.tick(5)
    assert harness.session.current_time_ms == 2500

    harness.engine.previous()

    assert harness.session.current_track.uri == b.uri
    assert harness.session.current_time_ms == 0
    assert harness.controller.names()[-1] == "play_from_start"


@pytest.mark.unit
def test_previous_on_local_track_always_restarts(harness):
    a = make_track(1, is_local=True, uri="uploads/a.mp3")
    b = make_track(2, is_local=True, uri="uploads/b.mp3")
    harness.engine.play(b, _playlist(a, b))
    harness.tick()

    harness.engine.previous()

    assert harness.session.current_track.uri == b.uri
    assert harness.session.current_time_ms == 0
    assert harness.players.players[-1].calls[-2:] == [("seek", 0), ("play",)]


@pytest.mark.unit
def test_previous_on_paused_local_track_rewinds_without_playing(harness):
    track = make_track(1, is_local=True, uri="uploads/a.mp3")
    harness.engine.play(track, _playlist(track))
    harness.tick(2)
    harness.engine.pause()

    harness.engine.previous()

    player = harness.players.players[-1]
    assert harness.session.state == PlaybackState.PAUSED
    assert harness.session.current_time_ms == 0
    assert player.calls[-2:] == [("seek", 0), ("pause",)]
    assert ("play",) not in player.calls[1:]
    assert harness.scheduler.pending == []

    harness.engine.resume()
    assert harness.session.state == PlaybackState.PLAYING
    assert len(harness.scheduler.pending) == 1


@pytest.mark.unit
def test_previous_on_paused_streamed_track_stays_paused(harness):
    a, b = make_track(1), make_track(2)
    harness.engine.play(b, _playlist(a, b))
    harness.tick(5)
    harness.engine.pause()

    harness.engine.previous()

    assert harness.session.current_track.uri == b.uri
    assert harness.session.state == PlaybackState.PAUSED
    assert harness.controller.names()[-2:] == ["play_from_start", "pause"]
    assert harness.scheduler.pending == []


@pytest.mark.unit
def test_enqueue_without_source_creates_queue(harness):
    track = make_track(1)
    source = harness.engine.enqueue(track)

    assert isinstance(source, AdHocQueue)
    assert source.name == "queue"
    assert [t.uri for t in source.tracks] == [track.uri]


@pytest.mark.unit
def test_enqueue_onto_playlist_turns_it_into_queue(harness):
    a, b, c = make_track(1), make_track(2), make_track(3)
    harness.engine.play(a, _playlist(a, b))

    harness.engine.enqueue(c)

    assert isinstance(harness.session.source, AdHocQueue)
    assert [t.uri for t in harness.session.source.tracks] == [a.uri, b.uri, c.uri]
    assert harness.session.current_track.uri == a.uri


@pytest.mark.unit
def test_stats_recorded_once_after_threshold(harness):
    track = make_track(1, duration_ms=5000)
    harness.engine.play(track)

    harness.tick()  # 500 / 5000 is exactly 10%, not past it
    assert harness.stats.plays == []
    harness.tick()
    harness.tick()

    assert harness.stats.plays == [("alice", track.uri)]
    assert harness.session.current_track.stats_updated is True


@pytest.mark.unit
def test_playback_update_syncs_position_and_pause_state(harness):
    harness.engine.play(make_track(1, duration_ms=10000))

    harness.controller.emit("playback_update", {"data": {"isPaused": True, "position": 4200}})
    assert harness.session.current_time_ms == 4200
    assert harness.session.state == PlaybackState.PAUSED

    harness.controller.emit("playback_update", {"isPaused": False, "positionMs": 4300})
    assert harness.session.state == PlaybackState.PLAYING


@pytest.mark.unit
def test_sleep_timer_pauses_and_can_be_replaced(harness):
    harness.engine.play(make_track(1))
    harness.engine.set_sleep_timer(5)
    first = [c for c in harness.scheduler.pending if c.delay == 300][0]

    harness.engine.set_sleep_timer(1)
    assert first.cancelled is True
    timer = [c for c in harness.scheduler.pending if c.delay == 60][0]

    timer.callback()
    assert harness.session.state == PlaybackState.PAUSED


@pytest.mark.unit
def test_failed_start_settles_idle():
    controller = FakeStreamingController()
    controller.fail_on_play = True
    h = Harness(controller=controller)

    assert h.engine.play(make_track(1)) is False
    assert h.session.state == PlaybackState.IDLE
    assert "could not start playback" in h.session.last_error
    assert controller.listener_count() == 0


@pytest.mark.unit
def test_notifier_failure_does_not_block_playback():
    h = Harness(notifier=NotifierStub(fail=True))
    assert h.engine.play(make_track(1)) is True
    assert h.session.state == PlaybackState.PLAYING


@pytest.mark.unit
def test_replace_source_keeps_current_track_playing(harness):
    a, b = make_track(1), make_track(2)
    harness.engine.play(a, _playlist(a))
    harness.tick()

    harness.engine.replace_source(_playlist(a, b))

    assert harness.session.current_time_ms == TICK
    assert harness.session.state == PlaybackState.PLAYING
    harness.engine.next()
    assert harness.session.current_track.uri == b.uri


@pytest.mark.unit
def test_stop_releases_audio_and_clears_now_playing(harness):
    harness.engine.play(make_track(1))
    harness.engine.stop()

    assert harness.session.state == PlaybackState.IDLE
    assert harness.session.current_track is None
    assert harness.controller.listener_count() == 0
    assert harness.notifier.updates[-1] == ("alice", None)
