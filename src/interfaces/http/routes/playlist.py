"""Playlist CRUD routes with ownership enforcement."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from src.interfaces.http.errors import track_from_payload
from src.models.dto import PlaylistDTO


playlist_bp = Blueprint('playlist_bp', __name__, url_prefix='/api/playlists')


def _store():
    return current_app.extensions['track_store']


def _serialize_playlist(playlist: PlaylistDTO, *, include_tracks: bool = True) -> dict:
    data = playlist.model_dump(mode='json', exclude=None if include_tracks else {'songs'})
    data['track_count'] = len(playlist.songs)
    data['reserved'] = playlist.is_reserved
    return data


@playlist_bp.route('', methods=['GET'])
@login_required
def list_playlists():
    playlists = _store().list_playlists(current_user.username)
    return jsonify({'items': [_serialize_playlist(p, include_tracks=False) for p in playlists]}), 200


@playlist_bp.route('', methods=['POST'])
@login_required
def create_playlist():
    payload = request.get_json(silent=True) or {}
    name = (payload.get('name') or '').strip()
    if not name:
        return jsonify({'error': 'name_required'}), 400

    playlist = _store().create_playlist(
        current_user.username,
        name,
        description=payload.get('description'),
        visibility=(payload.get('visibility') or 'private').strip().lower(),
        cover_img_url=payload.get('cover_img_url') or payload.get('coverImgUrl'),
    )
    return jsonify({'playlist': _serialize_playlist(playlist)}), 201


@playlist_bp.route('/search', methods=['GET'])
def search_playlists():
    name = (request.args.get('name') or '').strip()
    playlists = _store().search_public_playlists(name)
    return jsonify({'items': [_serialize_playlist(p) for p in playlists]}), 200


@playlist_bp.route('/<int:playlist_id>', methods=['GET'])
@login_required
def get_playlist(playlist_id: int):
    playlist = _store().get_playlist(playlist_id, current_user.username)
    return jsonify({'playlist': _serialize_playlist(playlist)}), 200


@playlist_bp.route('/<int:playlist_id>', methods=['DELETE'])
@login_required
def delete_playlist(playlist_id: int):
    _store().delete_playlist(current_user.username, playlist_id)
    return jsonify({'status': 'deleted'}), 200


@playlist_bp.route('/<int:playlist_id>/tracks', methods=['POST'])
@login_required
def add_track(playlist_id: int):
    track = track_from_payload(request.get_json(silent=True) or {})
    added = _store().add_song_to_playlist(playlist_id, track, current_user.username)
    return jsonify({'added': added, 'exists': not added}), 200


@playlist_bp.route('/<int:playlist_id>/tracks', methods=['DELETE'])
@login_required
def remove_track(playlist_id: int):
    track = track_from_payload(request.get_json(silent=True) or {})
    removed = _store().remove_song_from_playlist(playlist_id, track, current_user.username)
    return jsonify({'removed': removed}), 200


__all__ = ['playlist_bp']
