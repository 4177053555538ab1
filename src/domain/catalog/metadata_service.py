# src/domain/catalog/metadata_service.py
import logging
import threading
from typing import Any, Callable, List, Optional

import requests
import spotipy
from spotipy.exceptions import SpotifyException
from spotipy.oauth2 import SpotifyClientCredentials

from config import Config
from src.models.dto import Track
from src.utils.cache import TTLCache

logger = logging.getLogger(__name__)

LOCAL_GENRE = ["local"]
UNKNOWN_GENRE = ["others"]


class MetadataService:
    def __init__(self, spotify_client_id=None,
                 spotify_client_secret=None,
                 spotify_client=None,
                 http_session=None):
        """Streaming-provider metadata: search, artists, tokens and genres.

        Keys fall back to Config when not passed explicitly. A prebuilt
        spotipy client can be injected (tests, shared clients).
        """
        self._spotify_client_id = spotify_client_id or Config.SPOTIPY_CLIENT_ID
        self._spotify_client_secret = spotify_client_secret or Config.SPOTIPY_CLIENT_SECRET

        self._spotify_client_lock = threading.RLock()
        self._spotify_client_warned = False
        self._auth_manager = None

        self.sp = spotify_client
        if not self.sp:
            self._initialize_spotify_client()
        else:
            logger.info("Spotipy client injected into MetadataService.")

        self._http = http_session or requests.Session()
        self._timeout = Config.EXTERNAL_HTTP_TIMEOUT_SECONDS
        self._cache = TTLCache(maxsize=Config.METADATA_CACHE_MAXSIZE, ttl=Config.METADATA_CACHE_TTL_SECONDS)

    def _initialize_spotify_client(self, *, log_success_as_debug: bool = False) -> bool:
        if not self._spotify_client_id or not self._spotify_client_secret:
            if not self._spotify_client_warned:
                logger.warning("Spotify client ID and secret not provided in Config or args. MetadataService will be limited.")
                self._spotify_client_warned = True
            self.sp = None
            return False
        with self._spotify_client_lock:
            try:
                auth_manager = SpotifyClientCredentials(
                    client_id=self._spotify_client_id,
                    client_secret=self._spotify_client_secret
                )
                client = spotipy.Spotify(auth_manager=auth_manager)
            except Exception as exc:
                logger.error("Failed to initialize Spotipy client in MetadataService: %s", exc, exc_info=True)
                self.sp = None
                return False
            else:
                self._auth_manager = auth_manager
                self.sp = client
                message = "Spotipy client initialized successfully in MetadataService."
                if log_success_as_debug:
                    logger.debug("%s (refreshed)", message)
                else:
                    logger.info(message)
                return True

    def _refresh_spotify_client(self) -> bool:
        logger.debug("Refreshing Spotipy client credentials in MetadataService.")
        return self._initialize_spotify_client(log_success_as_debug=True)

    @property
    def available(self) -> bool:
        return self.sp is not None

    def call_spotify(self, action: str, call: Callable[[], Any]) -> Optional[Any]:
        """Run a spotipy call, refreshing credentials once on a 401.

        Returns None on any failure; callers decide whether that is fatal.
        """
        if not self.sp:
            logger.error('Spotipy client not initialized. Cannot %s.', action)
            return None
        try:
            return call()
        except SpotifyException as exc:
            if exc.http_status == 401:
                logger.warning('Spotify token expired during %s. Attempting to refresh credentials.', action)
                if self._refresh_spotify_client():
                    try:
                        return call()
                    except SpotifyException as retry_exc:
                        logger.error('Spotify API call failed after token refresh during %s: %s', action, retry_exc, exc_info=True)
                        return None
            logger.error('Spotify API call failed during %s: %s', action, exc, exc_info=True)
            return None
        except Exception as exc:
            logger.error('Unexpected error during %s: %s', action, exc, exc_info=True)
            return None

    def get_access_token(self) -> Optional[str]:
        """Client-credentials token handed to the browser streaming player."""
        if self._auth_manager is None:
            return None
        try:
            return self._auth_manager.get_access_token(as_dict=False)
        except Exception as exc:
            logger.warning("Could not obtain Spotify access token: %s", exc)
            return None

    def search_tracks(self, query: str, limit: int = 10) -> List[Track]:
        query = (query or "").strip()
        if not query:
            return []
        response = self.call_spotify(
            f'search tracks for {query!r}',
            lambda: self.sp.search(q=query, type='track', limit=limit)
        )
        if not response:
            return []
        items = (response.get('tracks') or {}).get('items') or []
        tracks = []
        for item in items:
            try:
                tracks.append(Track.from_payload(item))
            except Exception as exc:
                logger.debug("Skipping malformed search result %r: %s", item.get('id'), exc)
        return tracks

    def get_artist(self, artist_id: str) -> Optional[dict]:
        """Fetch artist metadata; cached, None when unavailable."""
        if not artist_id:
            return None
        return self._cache.get_or_load(
            ('artist', artist_id),
            lambda: self.call_spotify(f'fetch artist {artist_id}', lambda: self.sp.artist(artist_id)),
        )

    def lookup_genre(self, artist_name: Optional[str], title: Optional[str]) -> Optional[List[str]]:
        """Primary genre from the catalogue search API, or None."""
        term = " ".join(p for p in (artist_name, title) if p).strip()
        if not term:
            return None

        def _load():
            try:
                resp = self._http.get(
                    Config.GENRE_LOOKUP_URL,
                    params={'term': term, 'media': 'music', 'limit': 1},
                    timeout=self._timeout,
                )
                resp.raise_for_status()
                data = resp.json()
            except Exception as exc:
                logger.warning("Genre lookup failed for %s: %s", term, exc)
                return None
            results = data.get('results') or []
            if results and results[0].get('primaryGenreName'):
                return [results[0]['primaryGenreName']]
            return None

        return self._cache.get_or_load(('genre', term.lower()), _load)

    def enrich_track(self, track: Track) -> Track:
        """Fill genre and primary-artist images; placeholders on failure."""
        if track.is_local:
            track.genre = list(LOCAL_GENRE)
            return track

        artist = track.primary_artist
        genre = self.lookup_genre(artist.name if artist else None, track.name)
        track.genre = genre or list(UNKNOWN_GENRE)

        if artist is not None and artist.id:
            details = self.get_artist(artist.id)
            artist.images = list((details or {}).get('images') or [])
        return track


__all__ = ["MetadataService", "LOCAL_GENRE", "UNKNOWN_GENRE"]
