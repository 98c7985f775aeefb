from flask import Blueprint, jsonify, request, current_app
from pixeltrivia import socketio
from pixeltrivia.errors import ValidationError
from pixeltrivia.services.rooms.controller import RoomController, RoomSettings
from pixeltrivia.services.rooms.notifier import SocketIONotifier
from pixeltrivia.services.rooms.questions import QuestionSetLoader
from pixeltrivia.services.rooms.ratelimit import rate_limited
from pixeltrivia.services.rooms.scoring import ScoringConfig
from pixeltrivia.services.rooms.store import RoomStore


rooms = Blueprint('rooms', __name__)

ROOM_CONFIG_FIELDS = ('max_players', 'time_limit', 'question_count', 'game_mode', 'category', 'difficulty')


def _controller() -> RoomController:
    cfg = current_app.config
    store = RoomStore.from_config(cfg)
    return RoomController(
        store,
        QuestionSetLoader(store),
        scoring=ScoringConfig.from_config(cfg),
        notifier=SocketIONotifier(socketio),
        settings=RoomSettings.from_config(cfg),
    )


def _body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


@rooms.route('', methods=['POST'])
@rate_limited('room-creation')
def create_room():
    data = _body()
    # Settings may come flat or nested under "settings"
    settings = data.get('settings') if isinstance(data.get('settings'), dict) else data
    config = {k: settings.get(k) for k in ROOM_CONFIG_FIELDS if k in settings}
    result = _controller().create_room(data.get('player_name'), data.get('avatar'), config)
    return jsonify(result), 201


@rooms.route('/join', methods=['POST'])
@rate_limited('room-creation')
def join_room():
    data = _body()
    result = _controller().join_room(data.get('room_code'), data.get('player_name'), data.get('avatar'))
    return jsonify(result), 201


@rooms.route('/<code>', methods=['GET'])
@rate_limited('standard')
def get_room(code):
    return jsonify(_controller().get_room_state(code))


@rooms.route('/<code>/start', methods=['POST'])
@rate_limited('standard')
def start_game(code):
    data = _body()
    return jsonify(_controller().start_game(code, data.get('player_id')))


@rooms.route('/<code>/answer', methods=['POST'])
@rate_limited('standard')
def submit_answer(code):
    data = _body()
    result = _controller().submit_answer(code, data.get('player_id'), data.get('answer'), data.get('time_ms'))
    return jsonify(result)


@rooms.route('/<code>/next', methods=['POST'])
@rate_limited('standard')
def next_question(code):
    data = _body()
    return jsonify(_controller().next_question(code, data.get('player_id')))


@rooms.route('/<code>/question', methods=['GET'])
@rate_limited('standard')
def current_question(code):
    return jsonify(_controller().get_current_question(code, request.args.get('player_id')))


@rooms.route('/<code>/leave', methods=['POST'])
@rooms.route('/<code>', methods=['DELETE'])
@rate_limited('standard')
def leave_room(code):
    data = _body()
    player_id = data.get('player_id', request.args.get('player_id'))
    return jsonify(_controller().leave_room(code, player_id))


@rooms.route('/<code>/results', methods=['GET'])
@rate_limited('standard')
def results(code):
    return jsonify(_controller().get_results(code))
