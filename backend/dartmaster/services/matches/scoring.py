from typing import Optional, Tuple

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from dartmaster import db
from dartmaster.models import (
    DartThrow,
    Match,
    MatchConfirmation,
    MATCH_AWAITING_CONFIRMATION,
    MATCH_FORMATS,
    MATCH_LIVE,
    utcnow,
)
from dartmaster.services.errors import (
    ConcurrentUpdate,
    InvalidInput,
    InvalidParticipant,
    InvalidScore,
    InvalidState,
    NotFound,
)

MIN_POINTS = 0
MAX_POINTS = 180  # three treble twenties
THROWS_PER_ROUND = 3


def starting_score(match: Match) -> int:
    """Starting score for the match's game format (301/501/701, else 501)."""
    fmt = match.effective_format or current_app.config.get('DEFAULT_MATCH_FORMAT', '501')
    return MATCH_FORMATS.get(str(fmt), MATCH_FORMATS['501'])


def _latest_throw(match_id: int, player_id: int) -> Optional[DartThrow]:
    return (
        DartThrow.query
        .filter_by(match_id=match_id, user_id=player_id)
        .order_by(DartThrow.sequence.desc())
        .first()
    )


def _next_slot(match_id: int, player_id: int, latest: Optional[DartThrow]) -> Tuple[int, int]:
    """Round number and index within the round for the player's next dart.

    Rounds are dense and 1-based: a dart joins the latest round until it holds
    THROWS_PER_ROUND darts, then the next round opens.
    """
    if latest is None:
        return 1, 1
    in_round = DartThrow.query.filter_by(
        match_id=match_id, user_id=player_id, round_number=latest.round_number
    ).count()
    if in_round >= THROWS_PER_ROUND:
        return latest.round_number + 1, 1
    return latest.round_number, in_round + 1


def _valid_points(points) -> bool:
    return isinstance(points, int) and not isinstance(points, bool) and MIN_POINTS <= points <= MAX_POINTS


def _apply_bust_policy(match: Match, player_id: int, current: int, points: int) -> None:
    """A bust is rejected outright; no throw is stored."""
    current_app.logger.info(f"[bust] match={match.id} player={player_id} remaining={current} points={points}")
    raise InvalidScore('Score would go below zero - bust')


def _with_retries(label: str, match_id: int, player_id: int, attempt_fn):
    attempts = max(1, int(current_app.config.get('SCORING_MAX_RETRIES', 3)))
    for attempt in range(1, attempts + 1):
        try:
            return attempt_fn()
        except (StaleDataError, IntegrityError):
            db.session.rollback()
            current_app.logger.warning(
                f"[{label}-conflict] match={match_id} player={player_id} attempt={attempt}/{attempts}"
            )
    raise ConcurrentUpdate('Match was changed by another request, please retry')


def record_throw(match_id: int, player_id: int, points, is_double: bool) -> Tuple[DartThrow, bool]:
    """Validate and store one dart. Returns the stored throw and whether it finished the leg."""
    return _with_retries('throw', match_id, player_id,
                         lambda: _record_throw_once(match_id, player_id, points, is_double))


def _record_throw_once(match_id, player_id, points, is_double):
    match = db.session.get(Match, match_id)
    if match is None:
        raise NotFound('Match not found')
    if match.status != MATCH_LIVE:
        raise InvalidState('Match is not in progress')
    participant = match.participant_for(player_id)
    if participant is None:
        raise InvalidParticipant('User is not a participant in this match')
    if not _valid_points(points):
        raise InvalidInput(f'Invalid points ({MIN_POINTS}-{MAX_POINTS})')

    latest = _latest_throw(match.id, player_id)
    current = latest.remaining_score if latest else starting_score(match)
    new_remaining = current - points
    if new_remaining < 0:
        _apply_bust_policy(match, player_id, current, points)
    if new_remaining == 0 and not is_double:
        raise InvalidScore('Must finish with a double')

    round_number, throw_number = _next_slot(match.id, player_id, latest)
    # Dirtying the participant row makes the flush check its version
    participant.throw_sequence += 1
    dart = DartThrow(
        match_id=match.id,
        user_id=player_id,
        round_number=round_number,
        throw_number=throw_number,
        points=points,
        remaining_score=new_remaining,
        is_double=bool(is_double),
        sequence=participant.throw_sequence,
        thrown_at=utcnow(),
    )
    db.session.add(dart)

    finished = new_remaining == 0
    if finished:
        match.status = MATCH_AWAITING_CONFIRMATION
        participant.finishing_score = 0
        participant.position = 1
    db.session.commit()

    current_app.logger.info(
        f"[throw] match={match.id} player={player_id} points={points} remaining={new_remaining} "
        f"round={round_number} throw={throw_number} finished={finished}"
    )
    return dart, finished


def list_throws(match_id: int):
    return (
        DartThrow.query
        .filter_by(match_id=match_id)
        .order_by(DartThrow.user_id, DartThrow.round_number, DartThrow.throw_number)
        .all()
    )


def get_current_score(match_id: int) -> dict:
    match = db.session.get(Match, match_id)
    if match is None:
        raise NotFound('Match not found')
    start = starting_score(match)

    counts = {
        user_id: (rounds, darts)
        for user_id, rounds, darts in db.session.query(
            DartThrow.user_id,
            func.count(func.distinct(DartThrow.round_number)),
            func.count(DartThrow.id),
        ).filter(DartThrow.match_id == match.id).group_by(DartThrow.user_id)
    }

    player_scores = []
    for participant in match.participants:
        latest = _latest_throw(match.id, participant.user_id)
        current = latest.remaining_score if latest else start
        rounds, darts = counts.get(participant.user_id, (0, 0))
        player_scores.append({
            'user_id': participant.user_id,
            'username': participant.user.username if participant.user else None,
            'current_score': current,
            'rounds_played': rounds,
            'darts_thrown': darts,
            'status': 'finished' if current == 0 else 'in_progress',
        })

    return {
        'match_id': match.id,
        'status': match.status,
        'starting_score': start,
        'player_scores': player_scores,
        'updated_at': utcnow().isoformat(),
    }


def undo_last_throw(match_id: int, player_id: int) -> bool:
    """Remove the player's latest dart. Returns True if that reopened a finished leg."""
    return _with_retries('undo', match_id, player_id,
                         lambda: _undo_last_throw_once(match_id, player_id))


def _undo_last_throw_once(match_id, player_id):
    latest = _latest_throw(match_id, player_id)
    if latest is None:
        raise NotFound('No darts to undo')
    match = db.session.get(Match, match_id)
    if match is None or match.status not in (MATCH_LIVE, MATCH_AWAITING_CONFIRMATION):
        raise InvalidState('Cannot undo darts in this match state')
    participant = match.participant_for(player_id)
    if participant is None:
        raise InvalidParticipant('User is not a participant in this match')

    reopened = match.status == MATCH_AWAITING_CONFIRMATION and latest.remaining_score == 0
    round_number, throw_number = latest.round_number, latest.throw_number
    db.session.delete(latest)
    participant.updated_at = utcnow()
    if reopened:
        participant.finishing_score = None
        participant.position = None
        for p in match.participants:
            p.is_confirmed = False
        MatchConfirmation.query.filter_by(match_id=match.id).delete()
        match.status = MATCH_LIVE
    db.session.commit()

    current_app.logger.info(
        f"[undo] match={match_id} player={player_id} round={round_number} "
        f"throw={throw_number} reopened={reopened}"
    )
    return reopened
