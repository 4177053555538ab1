"""Party lifecycle and shared queue routes."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from src.interfaces.http.errors import track_from_payload
from src.models.dto import PartyDTO


party_bp = Blueprint('party_bp', __name__, url_prefix='/api/parties')


def _manager():
    return current_app.extensions['party_manager']


def _serialize(party: PartyDTO) -> dict:
    return party.model_dump(mode='json')


@party_bp.route('', methods=['POST'])
@login_required
def start_party():
    payload = request.get_json(silent=True) or {}
    name = (payload.get('name') or '').strip()
    if not name:
        return jsonify({'error': 'name_required'}), 400
    party_id = _manager().start(current_user.username, name)
    return jsonify({'id': party_id, 'success': True}), 201


@party_bp.route('', methods=['GET'])
@login_required
def list_parties():
    parties = _manager().parties_for(current_user.username)
    return jsonify({'parties': [_serialize(p) for p in parties]}), 200


@party_bp.route('/<int:party_id>', methods=['GET'])
@login_required
def get_party(party_id: int):
    party = _manager().open(current_user.username, party_id)
    return jsonify({'party': _serialize(party)}), 200


@party_bp.route('/<int:party_id>', methods=['DELETE'])
@login_required
def end_party(party_id: int):
    deleted = _manager().end(party_id, current_user.username)
    return jsonify({'deleted': deleted}), 200


@party_bp.route('/<int:party_id>/leave', methods=['POST'])
@login_required
def leave_party(party_id: int):
    left = _manager().leave(current_user.username, party_id)
    return jsonify({'left': left}), 200


@party_bp.route('/<int:party_id>/songs', methods=['POST'])
@login_required
def add_song(party_id: int):
    manager = _manager()
    manager.get(party_id, current_user.username)
    track = track_from_payload(request.get_json(silent=True) or {})
    party = manager.add_song(party_id, track)
    return jsonify({'party': _serialize(party), 'success': True}), 200


@party_bp.route('/<int:party_id>/songs', methods=['DELETE'])
@login_required
def remove_song(party_id: int):
    manager = _manager()
    manager.get(party_id, current_user.username)
    track = track_from_payload(request.get_json(silent=True) or {})
    party = manager.remove_song(party_id, track)
    return jsonify({'party': _serialize(party), 'success': True}), 200


@party_bp.route('/<int:party_id>/dj', methods=['PUT'])
@login_required
def toggle_dj(party_id: int):
    party = _manager().toggle_dj_mode(party_id, current_user.username)
    return jsonify({'party': _serialize(party)}), 200


__all__ = ['party_bp']
