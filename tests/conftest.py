import os
import sys
from pathlib import Path

import pytest

# Ensure project root is on sys.path so 'app', 'config', and 'src' import correctly
_TESTS_DIR = os.path.dirname(__file__)
_ROOT_DIR = os.path.abspath(os.path.join(_TESTS_DIR, os.pardir))
if _ROOT_DIR not in sys.path:
    sys.path.insert(0, _ROOT_DIR)

from tests.support import factories as test_factories
from tests.support import stubs as test_stubs


@pytest.fixture
def sqlite_uri(tmp_path_factory):
    db_dir = tmp_path_factory.mktemp("db")
    return f"sqlite:///{(Path(db_dir) / 'test.sqlite').as_posix()}"


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch, sqlite_uri):
    """Ensure a clean env for tests with per-test sqlite files."""
    monkeypatch.setenv("DATABASE_URL", sqlite_uri)
    monkeypatch.delenv("SPOTIPY_CLIENT_ID", raising=False)
    monkeypatch.delenv("SPOTIPY_CLIENT_SECRET", raising=False)
    monkeypatch.delenv("OTEL_EXPORTER_OTLP_ENDPOINT", raising=False)
    yield


@pytest.fixture
def spotipy_stub():
    return test_stubs.SpotipyStub()


@pytest.fixture
def lyrics_http():
    return test_stubs.HttpSessionStub()


@pytest.fixture
def app(sqlite_uri, spotipy_stub, lyrics_http):
    from flask_login import FlaskLoginClient

    import app as app_module
    from src.domain.catalog import LyricsService, MetadataService, RecommendationService

    application = app_module.create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": sqlite_uri,
            "SESSION_PROTECTION": None,
            "SECRET_KEY": "test-secret",
        }
    )
    application.test_client_class = FlaskLoginClient

    # Fixtures keep an app context pushed, so test requests share ``flask.g``;
    # drop Flask-Login's per-request user cache so each request loads its own user.
    @application.before_request
    def _reset_login_cache():
        from flask import g

        g.pop("_login_user", None)

    # Swap external collaborators for in-memory doubles
    metadata = MetadataService(spotify_client=spotipy_stub, http_session=test_stubs.HttpSessionStub())
    application.extensions["metadata_service"] = metadata
    application.extensions["recommendation_service"] = RecommendationService(metadata)
    application.extensions["lyrics_service"] = LyricsService(base_url="http://lyrics.test/v1", http_session=lyrics_http)
    yield application


@pytest.fixture
def app_context(app):
    with app.app_context():
        yield app


@pytest.fixture
def db_session(app_context):
    from src.database.db_manager import db

    test_factories.set_session(db.session)
    try:
        yield db.session
    finally:
        try:
            db.session.rollback()
        except Exception:
            pass
        db.session.remove()
        test_factories.reset_session()


@pytest.fixture
def factories(db_session):
    yield test_factories


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def user(factories, db_session):
    account = factories.UserFactory(username="host")
    db_session.commit()
    return account


@pytest.fixture
def login_client(app, user):
    """Test client with ``user`` logged in."""
    return app.test_client(user=user)
