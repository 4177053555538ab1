"""Now-playing visibility and listening statistics."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from src.interfaces.http.errors import track_from_payload


listening_bp = Blueprint('listening_bp', __name__, url_prefix='/api/listening')


@listening_bp.route('', methods=['POST'])
@login_required
def set_listening_to():
    payload = request.get_json(silent=True) or {}
    # An empty body clears the caller's now-playing entry
    track = track_from_payload(payload) if payload else None
    updated = current_app.extensions['now_playing'].set_listening_to(current_user.username, track)
    return jsonify({'success': updated}), 200


@listening_bp.route('/friends', methods=['GET'])
@login_required
def friends_listening():
    listening = current_app.extensions['now_playing'].friends_listening(current_user.username)
    return jsonify({'friends': listening}), 200


@listening_bp.route('/stats', methods=['POST'])
@login_required
def record_play():
    track = track_from_payload(request.get_json(silent=True) or {})
    recorded = current_app.extensions['stats'].record_play(current_user.username, track)
    return jsonify({'success': recorded}), 200


@listening_bp.route('/stats', methods=['GET'])
@login_required
def get_stats():
    limit = request.args.get('limit', type=int) or 10
    stats = current_app.extensions['stats'].stats_for(current_user.username, limit=max(1, min(limit, 50)))
    return jsonify({'stats': stats}), 200


__all__ = ['listening_bp']
