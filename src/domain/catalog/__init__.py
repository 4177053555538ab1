"""Catalog domain services (metadata, lyrics, recommendations, track store)."""

from .metadata_service import MetadataService
from .lyrics_service import LyricsService
from .recommendation_service import RecommendationService
from .track_store import TrackStore

__all__ = ["MetadataService", "LyricsService", "RecommendationService", "TrackStore"]
