"""Track search, lyrics and the browser player's streaming token."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from flask_login import login_required

from src.models.dto import Track


track_bp = Blueprint('track_bp', __name__, url_prefix='/api/tracks')


@track_bp.route('/local', methods=['GET'])
def search_local():
    query = (request.args.get('q') or '').strip()
    tracks = current_app.extensions['track_store'].search_local_tracks(query)
    return jsonify({'tracks': [t.model_dump(mode='json') for t in tracks]}), 200


@track_bp.route('/search', methods=['GET'])
@login_required
def search_streaming():
    query = (request.args.get('q') or '').strip()
    if not query:
        return jsonify({'error': 'query_required'}), 400
    limit = request.args.get('limit', type=int) or 10
    limit = max(1, min(limit, 50))
    tracks = current_app.extensions['metadata_service'].search_tracks(query, limit=limit)
    return jsonify({'tracks': [t.model_dump(mode='json') for t in tracks]}), 200


@track_bp.route('/lyrics', methods=['GET'])
@login_required
def lyrics():
    artist = (request.args.get('artist') or '').strip()
    title = (request.args.get('title') or '').strip()
    # Uploaded tracks may carry lyrics in their own tags
    local_uri = (request.args.get('local_uri') or '').strip()
    audio_path = None
    if local_uri:
        track = Track(uri=local_uri, name=title or local_uri, is_local=True)
        audio_path = current_app.extensions['track_store'].local_audio_path(track)
    text = current_app.extensions['lyrics_service'].lyrics_or_placeholder(
        artist or None,
        title or None,
        audio_path=audio_path,
    )
    return jsonify({'artist': artist, 'title': title, 'lyrics': text}), 200


@track_bp.route('/streaming-token', methods=['GET'])
@login_required
def streaming_token():
    token = current_app.extensions['metadata_service'].get_access_token()
    if not token:
        return jsonify({'error': 'external_service_unavailable', 'message': 'Streaming token unavailable'}), 503
    return jsonify({'access_token': token}), 200


__all__ = ['track_bp']
