from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required, current_user
from dartmaster import db
from dartmaster.api import parse_datetime
from dartmaster.models import (
    PlayerStatistics,
    Tournament,
    TournamentParticipant,
    MATCH_FORMATS,
    TOURNAMENT_COMPLETED,
    TOURNAMENT_DRAFT,
    utcnow,
)


tournaments = Blueprint('tournaments', __name__)


@tournaments.route('', methods=['GET'])
def list_tournaments():
    items = Tournament.query.order_by(Tournament.created_at.desc(), Tournament.id.desc()).all()
    return jsonify([t.to_dict() for t in items])


@tournaments.route('/<int:tournament_id>', methods=['GET'])
def get_tournament(tournament_id):
    tournament = db.get_or_404(Tournament, tournament_id)
    return jsonify(tournament.to_dict())


@tournaments.route('', methods=['POST'])
@login_required
def create_tournament():
    data = request.get_json(silent=True) or {}
    name = (data.get('name') or '').strip()
    if not name:
        return jsonify({'error': 'Tournament name is required'}), 400

    try:
        start_date = parse_datetime(data.get('start_date'))
        end_date = parse_datetime(data['end_date']) if data.get('end_date') else None
        deadline = parse_datetime(data['registration_deadline']) if data.get('registration_deadline') else None
    except ValueError:
        return jsonify({'error': 'Dates must be ISO 8601 strings'}), 400
    if start_date < utcnow():
        return jsonify({'error': 'Start date must be in the future'}), 400

    try:
        max_players = int(data.get('max_players', 100))
        number_of_groups = int(data.get('number_of_groups') or 1)
    except (TypeError, ValueError):
        return jsonify({'error': 'max_players and number_of_groups must be integers'}), 400
    if max_players < 2:
        return jsonify({'error': 'Tournament must have at least 2 players'}), 400

    match_format = str(data.get('match_format') or current_app.config.get('DEFAULT_MATCH_FORMAT', '501'))
    if match_format not in MATCH_FORMATS:
        return jsonify({'error': f"match_format must be one of {', '.join(MATCH_FORMATS)}"}), 400

    tournament = Tournament(
        name=name,
        description=(data.get('description') or '').strip() or None,
        status=TOURNAMENT_DRAFT,
        format=data.get('format') or 'group',
        match_format=match_format,
        start_date=start_date,
        end_date=end_date,
        registration_deadline=deadline,
        max_players=max_players,
        number_of_groups=number_of_groups,
        admin_id=current_user.id,
    )
    db.session.add(tournament)
    db.session.commit()
    current_app.logger.info(f"[tournament-create] tournament={tournament.id} admin={current_user.id}")
    return jsonify(tournament.to_dict()), 201


def _admin_draft_tournament(tournament_id, action):
    """Load a tournament the caller administers and that is still a draft.

    Returns (tournament, None) or (None, error response).
    """
    tournament = db.get_or_404(Tournament, tournament_id)
    if tournament.admin_id != current_user.id:
        return None, (jsonify({'error': f'Only the tournament admin can {action}'}), 403)
    if tournament.status != TOURNAMENT_DRAFT:
        return None, (jsonify({'error': f'Can only {action} tournaments in draft status'}), 400)
    return tournament, None


@tournaments.route('/<int:tournament_id>', methods=['PUT'])
@login_required
def update_tournament(tournament_id):
    tournament, error = _admin_draft_tournament(tournament_id, 'update')
    if error:
        return error
    data = request.get_json(silent=True) or {}

    if (data.get('name') or '').strip():
        tournament.name = data['name'].strip()
    if (data.get('description') or '').strip():
        tournament.description = data['description'].strip()
    try:
        start_date = parse_datetime(data['start_date']) if data.get('start_date') else None
        end_date = parse_datetime(data['end_date']) if data.get('end_date') else None
    except ValueError:
        return jsonify({'error': 'Dates must be ISO 8601 strings'}), 400
    if start_date is not None:
        if start_date < utcnow():
            return jsonify({'error': 'Start date must be in the future'}), 400
        tournament.start_date = start_date
    if end_date is not None:
        tournament.end_date = end_date
    if data.get('max_players') is not None:
        try:
            max_players = int(data['max_players'])
        except (TypeError, ValueError):
            return jsonify({'error': 'max_players must be an integer'}), 400
        if max_players < 2:
            return jsonify({'error': 'Tournament must have at least 2 players'}), 400
        tournament.max_players = max_players

    db.session.commit()
    current_app.logger.info(f"[tournament-update] tournament={tournament.id} user={current_user.id}")
    return jsonify(tournament.to_dict())


@tournaments.route('/<int:tournament_id>', methods=['DELETE'])
@login_required
def delete_tournament(tournament_id):
    tournament, error = _admin_draft_tournament(tournament_id, 'delete')
    if error:
        return error
    db.session.delete(tournament)
    db.session.commit()
    current_app.logger.info(f"[tournament-delete] tournament={tournament_id} user={current_user.id}")
    return jsonify({'success': True, 'message': 'Tournament deleted successfully'})


@tournaments.route('/<int:tournament_id>/register', methods=['POST'])
@login_required
def register_participant(tournament_id):
    tournament = db.get_or_404(Tournament, tournament_id)
    if tournament.status == TOURNAMENT_COMPLETED:
        return jsonify({'error': 'Tournament is already completed'}), 400
    if TournamentParticipant.query.filter_by(tournament_id=tournament.id, user_id=current_user.id).first():
        return jsonify({'error': 'Already registered for this tournament'}), 400
    registered = TournamentParticipant.query.filter_by(tournament_id=tournament.id, status='registered').count()
    if registered >= tournament.max_players:
        return jsonify({'error': 'Tournament is full'}), 400

    participant = TournamentParticipant(tournament_id=tournament.id, user_id=current_user.id)
    db.session.add(participant)
    db.session.commit()
    return jsonify(participant.to_dict()), 201


@tournaments.route('/<int:tournament_id>/participants', methods=['GET'])
def list_participants(tournament_id):
    tournament = db.get_or_404(Tournament, tournament_id)
    return jsonify([p.to_dict() for p in tournament.participants])


@tournaments.route('/<int:tournament_id>/statistics', methods=['GET'])
def tournament_statistics(tournament_id):
    tournament = db.get_or_404(Tournament, tournament_id)
    stats = PlayerStatistics.query.filter_by(tournament_id=tournament.id).order_by(PlayerStatistics.user_id).all()
    return jsonify([s.to_dict() for s in stats])
