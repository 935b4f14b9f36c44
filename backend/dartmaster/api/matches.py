from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required, current_user
from dartmaster import db, socketio
from dartmaster.api import parse_datetime
from dartmaster.models import (
    Match,
    MatchParticipant,
    Tournament,
    User,
    MATCH_FORMATS,
    MATCH_LIVE,
    MATCH_SCHEDULED,
    TOURNAMENT_COMPLETED,
    utcnow,
)
from dartmaster.services.matches import scoring
from dartmaster.services.matches.results import confirm_result


matches = Blueprint('matches', __name__)

# (from, to) pairs an admin may set directly. Finishing and completion go through scoring and confirmation
ADMIN_TRANSITIONS = {
    (MATCH_SCHEDULED, MATCH_LIVE),
}
ADMIN_STATUSES = tuple(sorted({to for _, to in ADMIN_TRANSITIONS}))


def _room(match_id: int) -> str:
    return f"match:{match_id}"


def _emit_score_update(match_id: int) -> None:
    socketio.emit('score_update', scoring.get_current_score(match_id), to=_room(match_id), namespace='/ws')


def _emit_status_update(match: Match) -> None:
    socketio.emit('status_update', {'match_id': match.id, 'status': match.status}, to=_room(match.id), namespace='/ws')


def _is_admin(match: Match) -> bool:
    return match.tournament is not None and match.tournament.admin_id == current_user.id


@matches.route('', methods=['GET'])
def list_matches():
    query = Match.query
    tournament_id = request.args.get('tournament_id', type=int)
    if tournament_id is not None:
        db.get_or_404(Tournament, tournament_id)
        query = query.filter_by(tournament_id=tournament_id)
    return jsonify([m.to_dict() for m in query.order_by(Match.created_at, Match.id).all()])


@matches.route('', methods=['POST'])
@login_required
def create_match():
    data = request.get_json(silent=True) or {}
    tournament = db.session.get(Tournament, data.get('tournament_id')) if data.get('tournament_id') else None
    if tournament is None:
        return jsonify({'error': 'Tournament not found'}), 404
    if tournament.admin_id != current_user.id:
        return jsonify({'error': 'Only the tournament admin can create matches'}), 403
    if tournament.status == TOURNAMENT_COMPLETED:
        return jsonify({'error': 'Cannot create matches for a completed tournament'}), 400

    match_format = data.get('match_format')
    if match_format is not None and str(match_format) not in MATCH_FORMATS:
        return jsonify({'error': f"match_format must be one of {', '.join(MATCH_FORMATS)}"}), 400
    try:
        scheduled_start = parse_datetime(data['scheduled_start']) if data.get('scheduled_start') else None
    except ValueError:
        return jsonify({'error': 'scheduled_start must be an ISO 8601 string'}), 400

    match = Match(
        tournament_id=tournament.id,
        match_format=str(match_format) if match_format is not None else None,
        status=MATCH_SCHEDULED,
        scheduled_start=scheduled_start,
    )
    db.session.add(match)
    db.session.commit()
    current_app.logger.info(f"[match-create] match={match.id} tournament={tournament.id}")
    return jsonify(match.to_dict()), 201


@matches.route('/<int:match_id>', methods=['GET'])
def get_match(match_id):
    match = db.get_or_404(Match, match_id)
    return jsonify(match.to_dict())


@matches.route('/<int:match_id>', methods=['DELETE'])
@login_required
def delete_match(match_id):
    match = db.get_or_404(Match, match_id)
    if not _is_admin(match):
        return jsonify({'error': 'Only the tournament admin can delete matches'}), 403
    if match.status != MATCH_SCHEDULED:
        return jsonify({'error': 'Can only delete scheduled matches'}), 400
    db.session.delete(match)
    db.session.commit()
    current_app.logger.info(f"[match-delete] match={match_id} user={current_user.id}")
    return jsonify({'success': True, 'message': 'Match deleted successfully'})


@matches.route('/<int:match_id>/participants', methods=['POST'])
@login_required
def add_participant(match_id):
    data = request.get_json(silent=True) or {}
    match = db.get_or_404(Match, match_id)
    user_id = data.get('user_id', current_user.id)
    if not isinstance(user_id, int) or isinstance(user_id, bool):
        return jsonify({'error': 'user_id must be an integer'}), 400
    if user_id != current_user.id and not _is_admin(match):
        return jsonify({'error': 'Only the tournament admin can add other players'}), 403
    if db.session.get(User, user_id) is None:
        return jsonify({'error': 'User not found'}), 404
    if match.status != MATCH_SCHEDULED:
        return jsonify({'error': 'Can only add participants to scheduled matches'}), 400
    if match.participant_for(user_id) is not None:
        return jsonify({'error': 'User is already a participant'}), 400
    if len(match.participants) >= int(current_app.config.get('MAX_MATCH_PARTICIPANTS', 2)):
        return jsonify({'error': 'Match is full'}), 400

    db.session.add(MatchParticipant(match_id=match.id, user_id=user_id))
    db.session.commit()
    current_app.logger.info(f"[participant-add] match={match.id} user={user_id}")
    return jsonify(match.to_dict()), 201


@matches.route('/<int:match_id>/status', methods=['PATCH'])
@login_required
def update_status(match_id):
    data = request.get_json(silent=True) or {}
    match = db.get_or_404(Match, match_id)
    if not _is_admin(match):
        return jsonify({'error': 'Only the tournament admin can update match status'}), 403
    status = data.get('status')
    if status not in ADMIN_STATUSES:
        return jsonify({'error': f"Invalid match status, expected one of {', '.join(ADMIN_STATUSES)}"}), 400
    if (match.status, status) not in ADMIN_TRANSITIONS:
        return jsonify({'error': f'Cannot change match status from {match.status} to {status}'}), 409

    if status == MATCH_LIVE and match.actual_start is None:
        match.actual_start = utcnow()
    match.status = status
    db.session.commit()
    current_app.logger.info(f"[match-status] match={match.id} status={status}")
    _emit_status_update(match)
    return jsonify(match.to_dict())


@matches.route('/<int:match_id>/throws', methods=['POST'])
@login_required
def record_throw(match_id):
    data = request.get_json(silent=True) or {}
    is_double = data.get('is_double', False)
    if not isinstance(is_double, bool):
        return jsonify({'error': 'is_double must be a boolean'}), 400
    dart, finished = scoring.record_throw(match_id, current_user.id, data.get('points'), is_double)
    _emit_score_update(match_id)
    return jsonify({
        'message': 'Match finished!' if finished else 'Dart recorded',
        'throw': dart.to_dict(),
    }), 201


@matches.route('/<int:match_id>/throws', methods=['GET'])
def list_throws(match_id):
    return jsonify([d.to_dict() for d in scoring.list_throws(match_id)])


@matches.route('/<int:match_id>/score', methods=['GET'])
def get_score(match_id):
    return jsonify(scoring.get_current_score(match_id))


@matches.route('/<int:match_id>/throws/last', methods=['DELETE'])
@login_required
def undo_last_throw(match_id):
    scoring.undo_last_throw(match_id, current_user.id)
    _emit_score_update(match_id)
    return jsonify({'success': True, 'message': 'Dart undone successfully'})


@matches.route('/<int:match_id>/confirm', methods=['POST'])
@login_required
def confirm(match_id):
    completed = confirm_result(match_id, current_user.id)
    match = db.session.get(Match, match_id)
    _emit_status_update(match)
    return jsonify({'success': True, 'completed': completed, 'match': match.to_dict()})
