#!/usr/bin/env python
# config.py
import os
from typing import List

# This assumes config.py is at the root of the project
basedir = os.path.abspath(os.path.dirname(__file__))


def _get_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _get_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def _get_csv_list(name: str, default: str) -> List[str]:
    raw = os.getenv(name)
    source = raw if raw is not None else default
    return [token.strip() for token in source.split(",") if token and token.strip()]


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'change-me-in-production'

    # Database (user documents, playlists, parties)
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(basedir, 'src', 'database', 'instance', 'tunesync.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Streaming provider (Spotify Web API)
    SPOTIPY_CLIENT_ID = os.environ.get('SPOTIPY_CLIENT_ID')
    SPOTIPY_CLIENT_SECRET = os.environ.get('SPOTIPY_CLIENT_SECRET')

    # Other external collaborators
    LYRICS_API_BASE_URL = os.getenv('LYRICS_API_BASE_URL', 'https://api.lyrics.ovh/v1')
    GENRE_LOOKUP_URL = os.getenv('GENRE_LOOKUP_URL', 'https://itunes.apple.com/search')
    EXTERNAL_HTTP_TIMEOUT_SECONDS = _get_float('EXTERNAL_HTTP_TIMEOUT_SECONDS', 10.0)

    # Uploaded audio is served from here; local track URIs are relative to it
    LOCAL_MEDIA_DIR = os.getenv('LOCAL_MEDIA_DIR', os.path.join(basedir, 'public'))

    # Playback engine
    PLAYBACK_TICK_MS = max(1, _get_int('PLAYBACK_TICK_MS', 500))
    PREVIOUS_RESTART_THRESHOLD_MS = _get_int('PREVIOUS_RESTART_THRESHOLD_MS', 2000)
    DJ_PREVIEW_MS = 30000
    RECOMMENDATION_LIMIT = max(1, _get_int('RECOMMENDATION_LIMIT', 10))
    # Fraction of a track that must play before a listen is counted
    STATS_THRESHOLD_RATIO = _get_float('STATS_THRESHOLD_RATIO', 0.1)

    # Search limits
    LOCAL_SEARCH_LIMIT = max(1, _get_int('LOCAL_SEARCH_LIMIT', 10))
    PUBLIC_PLAYLIST_SEARCH_LIMIT = max(1, _get_int('PUBLIC_PLAYLIST_SEARCH_LIMIT', 10))

    # Metadata caching (artist/genre lookups)
    METADATA_CACHE_TTL_SECONDS = _get_int('METADATA_CACHE_TTL_SECONDS', 300)
    METADATA_CACHE_MAXSIZE = max(1, _get_int('METADATA_CACHE_MAXSIZE', 256))

    # Runtime behavior
    DEBUG = _get_bool('DEBUG', False)
    # Control console logging; when disabled, logs go only to file
    ENABLE_CONSOLE_LOGS = _get_bool('ENABLE_CONSOLE_LOGS', False)
    # Flask-Login session protection: "basic", "strong" or empty to disable
    SESSION_PROTECTION = os.getenv('SESSION_PROTECTION', 'strong').strip() or None

    CORS_ALLOWED_ORIGINS = _get_csv_list('CORS_ALLOWED_ORIGINS', 'http://localhost:5757')

    # OpenTelemetry export (optional)
    OTEL_EXPORTER_OTLP_ENDPOINT = os.getenv('OTEL_EXPORTER_OTLP_ENDPOINT')
    OTEL_EXPORTER_OTLP_HEADERS = os.getenv('OTEL_EXPORTER_OTLP_HEADERS')
    OTEL_EXPORTER_OTLP_INSECURE = _get_bool('OTEL_EXPORTER_OTLP_INSECURE', True)
    OTEL_SERVICE_NAME = os.getenv('OTEL_SERVICE_NAME', 'tunesync')
