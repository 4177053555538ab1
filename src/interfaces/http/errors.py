"""JSON error responses and request payload helpers shared by the blueprints."""

from __future__ import annotations

import logging

from flask import jsonify
from pydantic import ValidationError

from src.database.db_manager import db
from src.domain.errors import PartyServiceError
from src.models.dto import Track

logger = logging.getLogger(__name__)


class InvalidPayload(ValueError):
    pass


def track_from_payload(payload: dict, key: str = 'track') -> Track:
    """Parse the track document under ``key`` (or the body itself)."""
    raw = payload.get(key) if isinstance(payload.get(key), dict) else payload
    if not isinstance(raw, dict) or not (raw.get('uri') or raw.get('url')):
        raise InvalidPayload('Track uri is required')
    try:
        return Track.from_payload(raw)
    except ValidationError as exc:
        raise InvalidPayload(f'Invalid track: {exc.error_count()} field error(s)') from exc


def register_error_handlers(app) -> None:
    @app.errorhandler(PartyServiceError)
    def _domain_error(exc: PartyServiceError):
        db.session.rollback()
        if exc.http_status >= 500:
            logger.warning("External dependency failed: %s", exc)
        return jsonify(exc.to_dict()), exc.http_status

    @app.errorhandler(InvalidPayload)
    def _invalid_payload(exc: InvalidPayload):
        return jsonify({'error': 'invalid_payload', 'message': str(exc)}), 400


__all__ = ["InvalidPayload", "register_error_handlers", "track_from_payload"]
