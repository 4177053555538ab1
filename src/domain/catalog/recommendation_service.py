"""Continuation material for an empty queue, seeded by the last track."""

from __future__ import annotations

import logging
from typing import List, Optional

from config import Config
from src.domain.errors import ExternalServiceUnavailable
from src.models.dto import Track
from src.observability.metrics import record_recommendation_request

logger = logging.getLogger(__name__)

# Genres assigned locally that the provider does not accept as seeds
_NON_SEED_GENRES = {"local", "others"}


class RecommendationService:
    def __init__(self, metadata_service, limit: int = Config.RECOMMENDATION_LIMIT):
        self._metadata = metadata_service
        self.limit = limit

    def get_recommendations(
        self,
        seed_track_id: Optional[str],
        seed_genre: Optional[str],
        seed_artist_id: Optional[str],
        limit: Optional[int] = None,
    ) -> List[Track]:
        """Return up to ``limit`` candidate tracks.

        Raises ExternalServiceUnavailable when no seed is usable, the
        provider call fails, or it returns no candidates. Never retries.
        """
        limit = max(1, min(limit or self.limit, self.limit))
        seeds = {
            'seed_tracks': [seed_track_id] if seed_track_id else None,
            'seed_artists': [seed_artist_id] if seed_artist_id else None,
            'seed_genres': None,
        }
        if seed_genre and seed_genre.lower() not in _NON_SEED_GENRES:
            seeds['seed_genres'] = [seed_genre.lower()]
        if not any(seeds.values()):
            record_recommendation_request(success=False)
            raise ExternalServiceUnavailable("recommendation unavailable: no usable seed")

        response = self._metadata.call_spotify(
            f'fetch recommendations for track={seed_track_id} artist={seed_artist_id}',
            lambda: self._metadata.sp.recommendations(limit=limit, **seeds),
        )
        if not response:
            record_recommendation_request(success=False)
            raise ExternalServiceUnavailable("recommendation unavailable")

        tracks: List[Track] = []
        for item in (response.get('tracks') or [])[:limit]:
            try:
                tracks.append(Track.from_payload(item))
            except Exception as exc:
                logger.debug("Skipping malformed recommendation %r: %s", item, exc)
        if not tracks:
            record_recommendation_request(success=False)
            raise ExternalServiceUnavailable("recommendation unavailable: provider returned no tracks")

        record_recommendation_request(success=True)
        logger.info("Fetched %d recommendations (seed track=%s)", len(tracks), seed_track_id)
        return tracks


__all__ = ["RecommendationService"]
