import pytest
from sqlalchemy import text

from dartmaster import db
from dartmaster.models import (
    DartThrow,
    Match,
    MatchParticipant,
    MATCH_AWAITING_CONFIRMATION,
    MATCH_COMPLETED,
    MATCH_LIVE,
    MATCH_SCHEDULED,
)
from dartmaster.services.errors import (
    ConcurrentUpdate,
    InvalidInput,
    InvalidParticipant,
    InvalidScore,
    InvalidState,
    NotFound,
)
from dartmaster.services.matches import scoring


def _set_status(match_id, status):
    match = db.session.get(Match, match_id)
    match.status = status
    db.session.commit()


def _throw_count(match_id):
    return DartThrow.query.filter_by(match_id=match_id).count()


def _participant(match_id, user_id):
    return MatchParticipant.query.filter_by(match_id=match_id, user_id=user_id).one()


def test_first_throw_counts_down_from_starting_score(seeded, app_ctx):
    dart, finished = scoring.record_throw(seeded.match_id, seeded.alice_id, 100, False)
    assert not finished
    assert dart.points == 100
    assert dart.remaining_score == 401
    assert (dart.round_number, dart.throw_number) == (1, 1)
    assert dart.is_double is False


def test_remaining_score_is_running_total(seeded, app_ctx):
    points = [60, 45, 100, 26, 180, 0]
    total = 0
    for p in points:
        dart, _ = scoring.record_throw(seeded.match_id, seeded.alice_id, p, False)
        total += p
        assert dart.remaining_score == 501 - total
        assert 0 <= dart.remaining_score <= 501


def test_round_numbering_three_darts_per_round(seeded, app_ctx):
    slots = []
    for p in [20, 20, 20, 20]:
        dart, _ = scoring.record_throw(seeded.match_id, seeded.alice_id, p, False)
        slots.append((dart.round_number, dart.throw_number))
    assert [r for r, _ in slots] == [1, 1, 1, 2]
    assert [t for _, t in slots] == [1, 2, 3, 1]


def test_rounds_are_tracked_per_player(seeded, app_ctx):
    scoring.record_throw(seeded.match_id, seeded.alice_id, 20, False)
    scoring.record_throw(seeded.match_id, seeded.alice_id, 20, False)
    dart, _ = scoring.record_throw(seeded.match_id, seeded.bob_id, 60, False)
    assert (dart.round_number, dart.throw_number) == (1, 1)
    assert dart.remaining_score == 441


@pytest.mark.parametrize('points', [181, -1, 200, '60', 12.5, None, True])
def test_invalid_points_rejected_without_writing(seeded, app_ctx, points):
    with pytest.raises(InvalidInput):
        scoring.record_throw(seeded.match_id, seeded.alice_id, points, False)
    assert _throw_count(seeded.match_id) == 0


def test_bust_is_rejected_and_state_unchanged(seeded, app_ctx):
    scoring.record_throw(seeded.match_id, seeded.alice_id, 180, False)
    scoring.record_throw(seeded.match_id, seeded.alice_id, 180, False)
    with pytest.raises(InvalidScore) as exc:
        scoring.record_throw(seeded.match_id, seeded.alice_id, 142, True)
    assert 'bust' in exc.value.message
    assert _throw_count(seeded.match_id) == 2
    score = scoring.get_current_score(seeded.match_id)
    alice = next(s for s in score['player_scores'] if s['user_id'] == seeded.alice_id)
    assert alice['current_score'] == 141


def test_finish_requires_double(seeded, app_ctx):
    for p in [180, 180, 101]:
        scoring.record_throw(seeded.match_id, seeded.alice_id, p, False)
    with pytest.raises(InvalidScore) as exc:
        scoring.record_throw(seeded.match_id, seeded.alice_id, 40, False)
    assert 'double' in exc.value.message
    assert _throw_count(seeded.match_id) == 3
    assert db.session.get(Match, seeded.match_id).status == MATCH_LIVE


def test_checkout_on_double_finishes_match(seeded, app_ctx):
    for p in [180, 180, 101]:
        scoring.record_throw(seeded.match_id, seeded.alice_id, p, False)
    dart, finished = scoring.record_throw(seeded.match_id, seeded.alice_id, 40, True)
    assert finished
    assert dart.remaining_score == 0
    assert (dart.round_number, dart.throw_number) == (2, 1)
    assert db.session.get(Match, seeded.match_id).status == MATCH_AWAITING_CONFIRMATION
    participant = _participant(seeded.match_id, seeded.alice_id)
    assert participant.finishing_score == 0
    assert participant.position == 1
    # only the finisher is placed
    assert _participant(seeded.match_id, seeded.bob_id).position is None


def test_double_flag_not_needed_above_zero(seeded, app_ctx):
    dart, finished = scoring.record_throw(seeded.match_id, seeded.alice_id, 60, True)
    assert not finished
    assert dart.is_double is True
    assert dart.remaining_score == 441


def test_record_throw_unknown_match(seeded, app_ctx):
    with pytest.raises(NotFound):
        scoring.record_throw(9999, seeded.alice_id, 20, False)


@pytest.mark.parametrize('status', [MATCH_SCHEDULED, MATCH_AWAITING_CONFIRMATION, MATCH_COMPLETED])
def test_record_throw_requires_live_match(seeded, app_ctx, status):
    _set_status(seeded.match_id, status)
    with pytest.raises(InvalidState):
        scoring.record_throw(seeded.match_id, seeded.alice_id, 20, False)
    assert _throw_count(seeded.match_id) == 0


def test_record_throw_requires_participant(seeded, app_ctx):
    with pytest.raises(InvalidParticipant):
        scoring.record_throw(seeded.match_id, seeded.carol_id, 20, False)


def test_validation_order_state_before_participant_before_points(seeded, app_ctx):
    # a non-participant sending bad points hears about participation first
    with pytest.raises(InvalidParticipant):
        scoring.record_throw(seeded.match_id, seeded.carol_id, 500, False)
    _set_status(seeded.match_id, MATCH_SCHEDULED)
    with pytest.raises(InvalidState):
        scoring.record_throw(seeded.match_id, seeded.carol_id, 500, False)


def test_match_format_sets_starting_score(seeded, app_ctx):
    match = db.session.get(Match, seeded.match_id)
    match.match_format = '301'
    db.session.commit()
    dart, _ = scoring.record_throw(seeded.match_id, seeded.alice_id, 1, False)
    assert dart.remaining_score == 300


def test_unknown_format_falls_back_to_501(seeded, app_ctx):
    match = db.session.get(Match, seeded.match_id)
    match.match_format = 'cricket'
    db.session.commit()
    assert scoring.starting_score(db.session.get(Match, seeded.match_id)) == 501


def test_current_score_before_any_throw(seeded, app_ctx):
    _set_status(seeded.match_id, MATCH_SCHEDULED)
    score = scoring.get_current_score(seeded.match_id)
    assert score['status'] == MATCH_SCHEDULED
    assert score['starting_score'] == 501
    assert len(score['player_scores']) == 2
    for s in score['player_scores']:
        assert s['current_score'] == 501
        assert s['rounds_played'] == 0
        assert s['darts_thrown'] == 0
        assert s['status'] == 'in_progress'


def test_current_score_counts_rounds_and_darts(seeded, app_ctx):
    for p in [20, 20, 20, 60]:
        scoring.record_throw(seeded.match_id, seeded.alice_id, p, False)
    scoring.record_throw(seeded.match_id, seeded.bob_id, 100, False)
    scores = {s['user_id']: s for s in scoring.get_current_score(seeded.match_id)['player_scores']}
    assert scores[seeded.alice_id]['current_score'] == 381
    assert scores[seeded.alice_id]['rounds_played'] == 2
    assert scores[seeded.alice_id]['darts_thrown'] == 4
    assert scores[seeded.bob_id]['current_score'] == 401
    assert scores[seeded.bob_id]['rounds_played'] == 1
    assert scores[seeded.bob_id]['darts_thrown'] == 1


def test_current_score_unknown_match(app_ctx):
    with pytest.raises(NotFound):
        scoring.get_current_score(9999)


def test_list_throws_ordering(seeded, app_ctx):
    assert scoring.list_throws(seeded.match_id) == []
    scoring.record_throw(seeded.match_id, seeded.bob_id, 10, False)
    scoring.record_throw(seeded.match_id, seeded.alice_id, 20, False)
    scoring.record_throw(seeded.match_id, seeded.bob_id, 30, False)
    scoring.record_throw(seeded.match_id, seeded.alice_id, 40, False)
    listed = [(d.user_id, d.round_number, d.throw_number, d.points) for d in scoring.list_throws(seeded.match_id)]
    first, second = sorted([seeded.alice_id, seeded.bob_id])
    expected_points = {seeded.alice_id: [20, 40], seeded.bob_id: [10, 30]}
    assert listed == [
        (first, 1, 1, expected_points[first][0]),
        (first, 1, 2, expected_points[first][1]),
        (second, 1, 1, expected_points[second][0]),
        (second, 1, 2, expected_points[second][1]),
    ]


def test_undo_removes_only_latest_throw(seeded, app_ctx):
    scoring.record_throw(seeded.match_id, seeded.alice_id, 100, False)
    scoring.record_throw(seeded.match_id, seeded.alice_id, 60, False)
    scoring.record_throw(seeded.match_id, seeded.bob_id, 45, False)

    reopened = scoring.undo_last_throw(seeded.match_id, seeded.alice_id)
    assert reopened is False
    remaining = [(d.user_id, d.points) for d in scoring.list_throws(seeded.match_id)]
    assert sorted(remaining) == sorted([(seeded.alice_id, 100), (seeded.bob_id, 45)])

    # the next dart reuses the freed slot
    dart, _ = scoring.record_throw(seeded.match_id, seeded.alice_id, 26, False)
    assert (dart.round_number, dart.throw_number) == (1, 2)
    assert dart.remaining_score == 375


def test_undo_without_darts(seeded, app_ctx):
    with pytest.raises(NotFound) as exc:
        scoring.undo_last_throw(seeded.match_id, seeded.alice_id)
    assert 'No darts' in exc.value.message


def test_undo_rejected_in_completed_match(seeded, app_ctx):
    scoring.record_throw(seeded.match_id, seeded.alice_id, 100, False)
    _set_status(seeded.match_id, MATCH_COMPLETED)
    with pytest.raises(InvalidState):
        scoring.undo_last_throw(seeded.match_id, seeded.alice_id)
    assert _throw_count(seeded.match_id) == 1


def test_undo_finishing_throw_reopens_match(seeded, app_ctx):
    for p in [180, 180, 101]:
        scoring.record_throw(seeded.match_id, seeded.alice_id, p, False)
    scoring.record_throw(seeded.match_id, seeded.alice_id, 40, True)

    reopened = scoring.undo_last_throw(seeded.match_id, seeded.alice_id)
    assert reopened is True
    assert db.session.get(Match, seeded.match_id).status == MATCH_LIVE
    participant = _participant(seeded.match_id, seeded.alice_id)
    assert participant.finishing_score is None
    assert participant.position is None
    assert _throw_count(seeded.match_id) == 3


def test_undo_other_players_dart_keeps_finish(seeded, app_ctx):
    scoring.record_throw(seeded.match_id, seeded.bob_id, 60, False)
    for p in [180, 180, 101]:
        scoring.record_throw(seeded.match_id, seeded.alice_id, p, False)
    scoring.record_throw(seeded.match_id, seeded.alice_id, 40, True)

    assert scoring.undo_last_throw(seeded.match_id, seeded.bob_id) is False
    assert db.session.get(Match, seeded.match_id).status == MATCH_AWAITING_CONFIRMATION
    assert _participant(seeded.match_id, seeded.alice_id).position == 1


def test_example_501_scenario(seeded, app_ctx):
    steps = [
        (100, False, 401, 1, 1),
        (140, False, 261, 1, 2),
        (60, True, 201, 1, 3),
        (180, False, 21, 2, 1),
        (19, False, 2, 2, 2),
        (2, True, 0, 2, 3),
    ]
    for points, is_double, remaining, round_number, throw_number in steps:
        dart, finished = scoring.record_throw(seeded.match_id, seeded.alice_id, points, is_double)
        assert dart.remaining_score == remaining
        assert (dart.round_number, dart.throw_number) == (round_number, throw_number)
        assert finished is (remaining == 0)
    assert db.session.get(Match, seeded.match_id).status == MATCH_AWAITING_CONFIRMATION

    scoring.undo_last_throw(seeded.match_id, seeded.alice_id)
    score = scoring.get_current_score(seeded.match_id)
    alice = next(s for s in score['player_scores'] if s['user_id'] == seeded.alice_id)
    assert alice['current_score'] == 2
    assert score['status'] == MATCH_LIVE


def test_conflicting_writer_is_retried(seeded, app_ctx, monkeypatch):
    real_next_slot = scoring._next_slot
    calls = []

    def racing_next_slot(match_id, player_id, latest):
        calls.append(player_id)
        if len(calls) == 1:
            # another request bumps the participant row between our read and write
            db.session.execute(
                text('UPDATE match_participant SET version = version + 1 WHERE match_id = :m AND user_id = :u'),
                {'m': match_id, 'u': player_id},
            )
        return real_next_slot(match_id, player_id, latest)

    monkeypatch.setattr(scoring, '_next_slot', racing_next_slot)
    dart, _ = scoring.record_throw(seeded.match_id, seeded.alice_id, 60, False)
    assert len(calls) == 2
    assert dart.remaining_score == 441
    assert _throw_count(seeded.match_id) == 1


def test_persistent_conflict_gives_up(seeded, app_ctx, monkeypatch):
    real_next_slot = scoring._next_slot
    calls = []

    def always_racing(match_id, player_id, latest):
        calls.append(player_id)
        db.session.execute(
            text('UPDATE match_participant SET version = version + 1 WHERE match_id = :m AND user_id = :u'),
            {'m': match_id, 'u': player_id},
        )
        return real_next_slot(match_id, player_id, latest)

    monkeypatch.setattr(scoring, '_next_slot', always_racing)
    with pytest.raises(ConcurrentUpdate):
        scoring.record_throw(seeded.match_id, seeded.alice_id, 60, False)
    assert len(calls) == 3
    assert _throw_count(seeded.match_id) == 0
