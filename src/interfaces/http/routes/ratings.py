"""Like/dislike toggling and the reserved rating lists."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from src.interfaces.http.errors import track_from_payload


rating_bp = Blueprint('rating_bp', __name__, url_prefix='/api/ratings')


def _store():
    return current_app.extensions['track_store']


def _songs(tracks) -> list[dict]:
    return [track.model_dump(mode='json') for track in tracks]


@rating_bp.route('/like', methods=['POST'])
@login_required
def like():
    track = track_from_payload(request.get_json(silent=True) or {})
    status = _store().like(current_user.username, track)
    return jsonify(status), 200


@rating_bp.route('/dislike', methods=['POST'])
@login_required
def dislike():
    track = track_from_payload(request.get_json(silent=True) or {})
    status = _store().dislike(current_user.username, track)
    return jsonify(status), 200


@rating_bp.route('/liked', methods=['GET'])
@login_required
def liked_songs():
    return jsonify({'songs': _songs(_store().liked_songs(current_user.username))}), 200


@rating_bp.route('/disliked', methods=['GET'])
@login_required
def disliked_songs():
    return jsonify({'songs': _songs(_store().disliked_songs(current_user.username))}), 200


__all__ = ['rating_bp']
