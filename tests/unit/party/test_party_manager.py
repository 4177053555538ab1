import pytest

from src.database.db_manager import Party, PartyMember
from src.domain.errors import Conflict, NotFound, Unauthorized
from src.domain.party import PartySessionManager, SqlPartyStore
from src.domain.playback import PlaybackEngine, PlaybackSession, StoredSource
from tests.support.stubs import (
    FakeStreamingController,
    LocalPlayerFactoryStub,
    ManualScheduler,
    RecommendationStub,
    make_track,
)


@pytest.fixture
def manager(db_session):
    return PartySessionManager(SqlPartyStore())


@pytest.fixture
def crew(factories, db_session):
    host = factories.UserFactory(username="host")
    ann = factories.UserFactory(username="ann")
    bob = factories.UserFactory(username="bob")
    host.add_friend(ann)
    host.add_friend(bob)
    db_session.commit()
    return host, ann, bob


def _engine(username="host"):
    return PlaybackEngine(
        PlaybackSession(username=username),
        controller=FakeStreamingController(),
        local_player_factory=LocalPlayerFactoryStub(),
        recommendations=RecommendationStub(),
        scheduler=ManualScheduler(),
    )


@pytest.mark.unit
def test_start_snapshots_host_and_friends(manager, crew):
    party_id = manager.start("host", "Friday")

    party = manager.get(party_id)
    assert party.host == "host"
    assert sorted(party.people) == ["ann", "bob", "host"]
    assert party.songs == []


@pytest.mark.unit
def test_start_conflicts_when_a_friend_is_already_partying(manager, crew, factories, db_session):
    other = factories.UserFactory(username="other")
    other.add_friend(crew[1])
    db_session.commit()
    manager.start("other", "Early party")
    before = Party.query.count()

    with pytest.raises(Conflict):
        manager.start("host", "Late party")

    assert Party.query.count() == before
    assert PartyMember.query.filter_by(username="host").count() == 0


@pytest.mark.unit
def test_host_cannot_start_two_parties(manager, crew):
    manager.start("host", "One")
    with pytest.raises(Conflict):
        manager.start("host", "Two")


@pytest.mark.unit
def test_start_requires_name(manager, crew):
    with pytest.raises(ValueError):
        manager.start("host", "   ")


@pytest.mark.unit
def test_end_is_idempotent_and_host_only(manager, crew):
    party_id = manager.start("host", "Friday")

    with pytest.raises(Unauthorized):
        manager.end(party_id, "ann")

    assert manager.end(party_id, "host") is True
    assert manager.end(party_id, "host") is False
    assert manager.end(424242) is False


@pytest.mark.unit
def test_ending_frees_members_for_a_new_party(manager, crew):
    party_id = manager.start("host", "Friday")
    manager.end(party_id, "host")

    assert manager.start("host", "Saturday")


@pytest.mark.unit
def test_leave_shrinks_membership_but_keeps_party(manager, crew):
    party_id = manager.start("host", "Friday")

    for username in ("ann", "bob", "host"):
        assert manager.leave(username, party_id) is True

    party = manager.get(party_id)
    assert party.people == []
    assert manager.leave("ann", party_id) is False
    assert manager.parties_for("ann") == []


@pytest.mark.unit
def test_leave_missing_party_raises_not_found(manager, crew):
    with pytest.raises(NotFound):
        manager.leave("ann", 999)


@pytest.mark.unit
def test_add_and_remove_songs(manager, crew):
    party_id = manager.start("host", "Friday")
    a, b = make_track(1), make_track(2)

    manager.add_song(party_id, a)
    manager.add_song(party_id, b)
    party = manager.add_song(party_id, a)
    assert [s.uri for s in party.songs] == [a.uri, b.uri, a.uri]

    party = manager.remove_song(party_id, a)
    assert [s.uri for s in party.songs] == [b.uri]
    # removing an absent song changes nothing
    party = manager.remove_song(party_id, make_track(5))
    assert [s.uri for s in party.songs] == [b.uri]


@pytest.mark.unit
def test_toggle_dj_mode_requires_previews_and_does_not_mutate_on_failure(manager, crew):
    party_id = manager.start("host", "Friday")
    manager.add_song(party_id, make_track(1, preview_url="https://p/1.mp3"))
    manager.add_song(party_id, make_track(2))

    with pytest.raises(Conflict):
        manager.toggle_dj_mode(party_id, "host")

    party = manager.get(party_id)
    assert party.dj_mode is False
    assert [s.dj for s in party.songs] == [False, False]


@pytest.mark.unit
def test_toggle_dj_mode_flips_every_song(manager, crew):
    party_id = manager.start("host", "Friday")
    manager.add_song(party_id, make_track(1, preview_url="https://p/1.mp3"))
    manager.add_song(party_id, make_track(2, preview_url="https://p/2.mp3"))

    with pytest.raises(Unauthorized):
        manager.toggle_dj_mode(party_id, "ann")

    party = manager.toggle_dj_mode(party_id, "host")
    assert party.dj_mode is True
    assert all(s.dj for s in party.songs)
    assert all(s.effective_duration_ms == 30000 for s in party.songs)

    party = manager.toggle_dj_mode(party_id, "host")
    assert party.dj_mode is False
    assert not any(s.dj for s in party.songs)


@pytest.mark.unit
def test_songs_added_in_dj_mode_need_a_preview(manager, crew):
    party_id = manager.start("host", "Friday")
    manager.toggle_dj_mode(party_id, "host")

    with pytest.raises(Conflict):
        manager.add_song(party_id, make_track(1))
    party = manager.add_song(party_id, make_track(2, preview_url="https://p/2.mp3"))
    assert party.songs[0].dj is True


@pytest.mark.unit
def test_viewing_state_per_member(manager, crew):
    party_id = manager.start("host", "Friday")

    manager.open("ann", party_id)
    assert manager.is_viewing("ann", party_id)
    assert manager.viewers(party_id) == {"ann"}

    manager.close("ann", party_id)
    assert not manager.is_viewing("ann", party_id)
    assert manager.viewers(party_id) == set()


@pytest.mark.unit
def test_open_rejects_non_members(manager, crew, factories, db_session):
    factories.UserFactory(username="stranger")
    db_session.commit()
    party_id = manager.start("host", "Friday")

    with pytest.raises(Unauthorized):
        manager.open("stranger", party_id)


@pytest.mark.unit
def test_only_host_can_start_party_playback(manager, crew):
    party_id = manager.start("host", "Friday")
    manager.add_song(party_id, make_track(1))
    manager.add_song(party_id, make_track(2))

    with pytest.raises(Unauthorized, match="Only the host can play songs in a party"):
        manager.start_playback(_engine("ann"), party_id, "ann")

    engine = _engine()
    assert manager.start_playback(engine, party_id, "host") is True
    assert engine.session.current_track.uri == make_track(1).uri
    assert isinstance(engine.session.source, StoredSource)
    assert engine.session.source.origin == "party"


@pytest.mark.unit
def test_refresh_playback_swaps_source_without_interrupting(manager, crew):
    party_id = manager.start("host", "Friday")
    manager.add_song(party_id, make_track(1))
    engine = _engine()
    manager.start_playback(engine, party_id, "host")

    manager.add_song(party_id, make_track(2))
    manager.refresh_playback(engine, party_id)

    assert engine.session.current_track.uri == make_track(1).uri
    assert [t.uri for t in engine.session.source.tracks] == [make_track(1).uri, make_track(2).uri]
