import logging
import os
from typing import Optional
from urllib.parse import quote

import requests

from config import Config

logger = logging.getLogger(__name__)

try:
    from mutagen import File as MutagenFile  # type: ignore
    from mutagen.id3 import ID3  # type: ignore
    from mutagen.mp3 import MP3  # type: ignore
    from mutagen.mp4 import MP4  # type: ignore
except Exception:  # pragma: no cover - mutagen is a declared dependency
    MutagenFile = None  # type: ignore
    ID3 = MP3 = MP4 = None  # type: ignore

try:
    import syncedlyrics
except Exception:  # pragma: no cover - optional provider
    syncedlyrics = None  # type: ignore

NO_LYRICS_PLACEHOLDER = "Sorry, no lyrics available"


class LyricsService:
    def __init__(self, base_url=None, http_session=None, timeout=None):
        """Lyrics lookup for the now-playing view.

        Sources, in order: lyrics embedded in a local audio file, the
        lyrics.ovh API, then syncedlyrics providers when installed.
        """
        self._base_url = (base_url or Config.LYRICS_API_BASE_URL).rstrip('/')
        self._http = http_session or requests.Session()
        self._timeout = timeout or Config.EXTERNAL_HTTP_TIMEOUT_SECONDS

    def extract_lyrics_from_audio(self, audio_path: Optional[str]) -> Optional[str]:
        """Unsynced lyrics embedded in an uploaded file's tags, or None."""
        if not audio_path or not os.path.exists(audio_path):
            return None
        if MutagenFile is None:  # pragma: no cover
            logger.debug("mutagen not available; cannot read embedded lyrics")
            return None

        try:
            mf = MutagenFile(audio_path, easy=False)
        except Exception as e:
            logger.debug("Failed to read audio tags for %s: %s", audio_path, e)
            return None
        if mf is None:
            return None

        texts = []
        if MP3 is not None and isinstance(mf, MP3):
            try:
                frames = ID3(audio_path).getall('USLT')
            except Exception:
                frames = []
            for frame in frames or []:
                text = getattr(frame, 'text', None)
                if isinstance(text, list):
                    texts.extend(t for t in text if t)
                elif text:
                    texts.append(text)
        elif MP4 is not None and isinstance(mf, MP4):
            values = (mf.tags or {}).get('©lyr') or []
            texts.extend(v for v in values if isinstance(v, str))
        else:
            tags = getattr(mf, 'tags', None) or {}
            for key in ('lyrics', 'LYRICS', 'unsyncedlyrics', 'UNSYNCEDLYRICS'):
                values = tags.get(key)
                if values:
                    texts.extend(str(v) for v in (values if isinstance(values, (list, tuple)) else [values]) if v)
                    break
        joined = "\n".join(texts).strip()
        return joined or None

    def fetch_remote_lyrics(self, artist: Optional[str], title: Optional[str]) -> Optional[str]:
        if not artist or not title:
            return None
        url = f"{self._base_url}/{quote(artist, safe='')}/{quote(title, safe='')}"
        try:
            resp = self._http.get(url, timeout=self._timeout)
            if resp.status_code == 404:
                logger.debug("No lyrics for %s - %s", artist, title)
                return None
            resp.raise_for_status()
            data = resp.json()
        except Exception as exc:
            logger.warning("Lyrics lookup failed for %s - %s: %s", artist, title, exc)
            return None
        text = (data.get('lyrics') or '').strip()
        return text or None

    def fetch_synced_lyrics(self, artist: Optional[str], title: Optional[str]) -> Optional[str]:
        if syncedlyrics is None:
            logger.debug("syncedlyrics library not available; skipping provider fallback")
            return None
        query = " ".join(p for p in (title, artist) if p).strip()
        if not query:
            return None
        try:
            text = syncedlyrics.search(query)
        except Exception as exc:  # pragma: no cover - network/provider issues
            logger.warning("Synced lyrics search failed for %s: %s", query, exc)
            return None
        return (text or '').strip() or None

    def get_lyrics(self, artist: Optional[str], title: Optional[str], *, audio_path: Optional[str] = None) -> Optional[str]:
        """Lyrics text, or None when every source came up empty."""
        return (
            self.extract_lyrics_from_audio(audio_path)
            or self.fetch_remote_lyrics(artist, title)
            or self.fetch_synced_lyrics(artist, title)
        )

    def lyrics_or_placeholder(self, artist: Optional[str], title: Optional[str], *, audio_path: Optional[str] = None) -> str:
        try:
            lyrics = self.get_lyrics(artist, title, audio_path=audio_path)
        except Exception as exc:
            logger.warning("Lyrics lookup raised for %s - %s: %s", artist, title, exc)
            lyrics = None
        return lyrics or NO_LYRICS_PLACEHOLDER


__all__ = ["LyricsService", "NO_LYRICS_PLACEHOLDER"]
