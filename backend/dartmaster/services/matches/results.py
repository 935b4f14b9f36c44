from flask import current_app
from sqlalchemy import func

from dartmaster import db
from dartmaster.models import (
    DartThrow,
    Match,
    MatchConfirmation,
    PlayerStatistics,
    MATCH_AWAITING_CONFIRMATION,
    MATCH_COMPLETED,
    utcnow,
)
from dartmaster.services.errors import InvalidParticipant, InvalidState, NotFound
from dartmaster.services.matches.scoring import _with_retries


def confirm_result(match_id: int, user_id: int) -> bool:
    """Record a participant's confirmation of a finished match.

    Once every participant has confirmed, the match is completed and the
    tournament statistics of its players are updated. Returns True when this
    confirmation completed the match.
    """
    return _with_retries('confirm', match_id, user_id, lambda: _confirm_result_once(match_id, user_id))


def _confirm_result_once(match_id, user_id):
    match = db.session.get(Match, match_id)
    if match is None:
        raise NotFound('Match not found')
    if match.status != MATCH_AWAITING_CONFIRMATION:
        raise InvalidState('Match is not awaiting confirmation')
    participant = match.participant_for(user_id)
    if participant is None:
        raise InvalidParticipant('User is not a participant in this match')
    if participant.is_confirmed:
        raise InvalidState('Result already confirmed')

    completed = _others_confirmed(match, participant)
    now = utcnow()
    db.session.add(MatchConfirmation(match_id=match.id, user_id=user_id, confirmed=True, confirmed_at=now))
    participant.is_confirmed = True
    # Touch every roster row so a concurrent confirmation fails its version check
    for p in match.participants:
        p.updated_at = now

    if completed:
        match.status = MATCH_COMPLETED
        match.actual_end = now
        _update_statistics(match)
    db.session.commit()

    current_app.logger.info(f"[confirm] match={match_id} user={user_id} completed={completed}")
    return completed


def _others_confirmed(match: Match, participant) -> bool:
    return all(p.is_confirmed for p in match.participants if p is not participant)


def _update_statistics(match: Match) -> None:
    for participant in match.participants:
        stats = PlayerStatistics.query.filter_by(
            tournament_id=match.tournament_id, user_id=participant.user_id
        ).first()
        if stats is None:
            stats = PlayerStatistics(
                tournament_id=match.tournament_id,
                user_id=participant.user_id,
                matches_played=0,
                matches_won=0,
                matches_lost=0,
                darts_thrown=0,
                points_scored=0,
            )
            db.session.add(stats)

        darts, points = db.session.query(
            func.count(DartThrow.id), func.coalesce(func.sum(DartThrow.points), 0)
        ).filter(DartThrow.match_id == match.id, DartThrow.user_id == participant.user_id).one()

        stats.matches_played += 1
        if participant.position == 1:
            stats.matches_won += 1
        else:
            stats.matches_lost += 1
        stats.win_loss_ratio = round(stats.matches_won / stats.matches_lost, 3) if stats.matches_lost else float(stats.matches_won)
        stats.darts_thrown += darts
        stats.points_scored += points
        stats.average_score = round(stats.points_scored / stats.darts_thrown, 2) if stats.darts_thrown else 0.0
