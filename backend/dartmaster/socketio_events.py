from flask_socketio import join_room, leave_room, emit
from dartmaster import socketio, db
from dartmaster.models import Match
from dartmaster.services.matches.scoring import get_current_score


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def _match_id(data):
    match_id = (data or {}).get('match_id')
    try:
        return int(match_id)
    except (TypeError, ValueError):
        return None


def handle_join_match(data):
    match_id = _match_id(data)
    if match_id is None:
        emit('error', {'message': 'match_id is required'})
        return
    if db.session.get(Match, match_id) is None:
        emit('error', {'message': 'Match not found'})
        return
    room = f"match:{match_id}"
    join_room(room)
    emit('joined', {'room': room})
    # Late joiners get the current scoreboard straight away
    emit('score_update', get_current_score(match_id))


def handle_leave_match(data):
    match_id = _match_id(data)
    if match_id is None:
        emit('error', {'message': 'match_id is required'})
        return
    room = f"match:{match_id}"
    leave_room(room)
    emit('left', {'room': room})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on the '/ws' namespace."""
    socketio.on_event('connect', handle_connect, namespace='/ws')
    socketio.on_event('join_match', handle_join_match, namespace='/ws')
    socketio.on_event('leave_match', handle_leave_match, namespace='/ws')
    socketio.on_event('ping', handle_ping, namespace='/ws')
