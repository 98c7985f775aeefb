import pytest

from pixeltrivia.errors import AuthorizationError, NotFoundError, RoomError, RoomFullError, ValidationError
from pixeltrivia.services.rooms.controller import RoomController
from pixeltrivia.services.rooms.questions import QuestionSetLoader

from conftest import SAMPLE_QUESTIONS, static_source


def _room(controller, **config):
    config.setdefault('max_players', 4)
    config.setdefault('time_limit', 30)
    config.setdefault('question_count', 3)
    created = controller.create_room('Host', 'wizard', config)
    return created['room_code'], created['player_id']


def _started_room(controller, players=('Ann', 'Bob')):
    code, host_id = _room(controller)
    ids = [controller.join_room(code, name)['player_id'] for name in players]
    controller.start_game(code, host_id)
    return code, host_id, ids


def test_full_game_scenario(controller, notifier):
    code, host_id = _room(controller, max_players=4, time_limit=30)
    player_ids = [host_id] + [controller.join_room(code, name)['player_id'] for name in ('Ann', 'Bob', 'Cat')]
    with pytest.raises(RoomFullError):
        controller.join_room(code, 'Dan')

    started = controller.start_game(code, host_id)
    assert started['total_questions'] == 3
    assert 'correct_answer' not in started['current_question']

    gained = {pid: [] for pid in player_ids}
    for q in range(3):
        correct = SAMPLE_QUESTIONS[q].correct_answer_index
        for i, pid in enumerate(player_ids):
            # Everyone gets Q1 right in 2s; later questions alternate
            answer = correct if q == 0 or i % 2 == 0 else (correct + 1) % 4
            result = controller.submit_answer(code, pid, answer, 2000)
            assert result['accepted'] is True
            if q == 0:
                assert result['score_gained'] == 147
            gained[pid].append(result['score_gained'])
        advanced = controller.next_question(code, host_id)
        if q < 2:
            assert advanced['game_over'] is False
            assert 'final_scores' not in advanced
            assert controller.get_room_state(code)['current_question_index'] == q + 1
        else:
            assert advanced['game_over'] is True

    final = advanced['final_scores']
    totals = [entry['total_score'] for entry in final]
    assert totals == sorted(totals, reverse=True)
    for entry in final:
        assert entry['total_score'] == sum(gained[entry['player_id']])
    assert controller.get_room_state(code)['status'] == 'finished'
    assert notifier.names(code)[-1] == 'game_finished'


def test_create_room_validates_input(controller):
    with pytest.raises(ValidationError):
        controller.create_room('', 'knight', {})
    with pytest.raises(ValidationError):
        controller.create_room('Bad<Name>', 'knight', {})
    with pytest.raises(ValidationError):
        controller.create_room('Host', 'knight', {'max_players': 1})
    with pytest.raises(ValidationError):
        controller.create_room('Host', 'knight', {'time_limit': 500})
    with pytest.raises(ValidationError):
        controller.create_room('Host', 'knight', {'difficulty': 'impossible'})


def test_create_room_defaults(controller):
    created = controller.create_room('Host', None, {})
    assert created['status'] == 'waiting'
    assert created['max_players'] == 8
    assert created['time_limit'] == 30
    assert created['question_count'] == 10
    assert created['display_code'] == f"{created['room_code'][:3]}-{created['room_code'][3:]}"


def test_join_rules(controller):
    code, host_id = _room(controller)
    with pytest.raises(ValidationError):
        controller.join_room(code, 'Host')
    with pytest.raises(NotFoundError):
        controller.join_room('ZZZZZZ', 'Ann')
    with pytest.raises(ValidationError):
        controller.join_room('nope', 'Ann')
    joined = controller.join_room(code.lower(), 'Ann')
    assert [p['name'] for p in joined['room']['players']] == ['Host', 'Ann']
    controller.start_game(code, host_id)
    with pytest.raises(RoomError):
        controller.join_room(code, 'Bob')


def test_start_game_rules(controller):
    code, host_id = _room(controller)
    with pytest.raises(RoomError):
        controller.start_game(code, host_id)
    ann = controller.join_room(code, 'Ann')['player_id']
    with pytest.raises(AuthorizationError):
        controller.start_game(code, ann)
    controller.start_game(code, host_id)
    with pytest.raises(RoomError) as excinfo:
        controller.start_game(code, host_id)
    assert excinfo.value.status_code == 409


def test_start_game_without_questions_writes_nothing(store, notifier, clock):
    controller = RoomController(store, QuestionSetLoader(store, source=static_source([])),
                                notifier=notifier, clock=clock)
    code, host_id = _room(controller)
    controller.join_room(code, 'Ann')
    with pytest.raises(RoomError):
        controller.start_game(code, host_id)
    assert controller.get_room_state(code)['status'] == 'waiting'


def test_start_game_with_short_question_set(controller):
    code, host_id = _room(controller, question_count=10)
    controller.join_room(code, 'Ann')
    started = controller.start_game(code, host_id)
    assert started['total_questions'] == len(SAMPLE_QUESTIONS)


def test_duplicate_answer_is_not_counted(controller):
    code, host_id, (ann, _) = _started_room(controller)
    first = controller.submit_answer(code, ann, 1, 2000)
    second = controller.submit_answer(code, ann, 0, 100)
    assert first['accepted'] is True
    assert second['accepted'] is False
    assert second['total_score'] == first['total_score'] == 147


def test_submit_answer_rules(controller):
    code, host_id = _room(controller)
    ann = controller.join_room(code, 'Ann')['player_id']
    with pytest.raises(RoomError):
        controller.submit_answer(code, ann, 0, 1000)
    controller.start_game(code, host_id)
    with pytest.raises(ValidationError):
        controller.submit_answer(code, ann, -1, 1000)
    with pytest.raises(ValidationError):
        controller.submit_answer(code, ann, 9, 1000)
    with pytest.raises(ValidationError):
        controller.submit_answer(code, ann, 0, None)
    with pytest.raises(NotFoundError):
        controller.submit_answer(code, 9999, 0, 1000)


def test_slow_answers_clamp_to_base_points(controller):
    code, host_id, (ann, _) = _started_room(controller)
    result = controller.submit_answer(code, ann, 1, 120000)
    assert result['correct'] is True
    assert result['score_gained'] == 100


def test_wrong_answer_scores_zero(controller):
    code, host_id, (ann, _) = _started_room(controller)
    result = controller.submit_answer(code, ann, 0, 1000)
    assert result == {'accepted': True, 'correct': False, 'score_gained': 0, 'total_score': 0,
                      'question_index': 0}


def test_next_question_is_host_only_and_resets_markers(controller):
    code, host_id, (ann, bob) = _started_room(controller)
    controller.submit_answer(code, ann, 1, 2000)
    with pytest.raises(AuthorizationError):
        controller.next_question(code, ann)
    advanced = controller.next_question(code, host_id)
    assert advanced['correct_answer'] == 1
    results = {r['player_id']: r for r in advanced['question_results']}
    assert results[ann]['correct'] is True
    assert results[bob]['answer'] is None
    assert advanced['question_results'][0]['player_id'] == ann
    view = controller.get_current_question(code, ann)
    assert view['has_answered'] is False
    assert view['question']['index'] == 1


def test_finished_game_never_reopens(controller):
    code, host_id, _ = _started_room(controller)
    for _ in range(3):
        controller.next_question(code, host_id)
    with pytest.raises(RoomError):
        controller.next_question(code, host_id)
    with pytest.raises(RoomError):
        controller.start_game(code, host_id)
    assert controller.get_room_state(code)['status'] == 'finished'


def test_answer_key_only_visible_to_host(controller):
    code, host_id, (ann, _) = _started_room(controller)
    assert 'correct_answer' not in controller.get_current_question(code, ann)['question']
    assert controller.get_current_question(code, host_id)['question']['correct_answer'] == 1


def test_leave_room(controller, notifier):
    code, host_id = _room(controller)
    ann = controller.join_room(code, 'Ann')['player_id']
    assert controller.leave_room(code, ann) == {'action': 'player_left'}
    assert controller.leave_room(code, ann) == {'action': 'player_left'}
    assert [p['name'] for p in controller.get_room_state(code)['players']] == ['Host']
    assert controller.leave_room(code, host_id) == {'action': 'room_closed'}
    assert controller.get_room_state(code)['status'] == 'finished'
    assert 'room_closed' in notifier.names(code)


def test_results_after_game(controller):
    waiting_code, _ = _room(controller)
    with pytest.raises(RoomError):
        controller.get_results(waiting_code)
    code, host_id, (ann, bob) = _started_room(controller)
    controller.submit_answer(code, ann, 1, 2000)
    for _ in range(3):
        controller.next_question(code, host_id)
    results = controller.get_results(code)
    top = results['players'][0]
    assert top['player_id'] == ann
    assert top['rank'] == 1
    assert top['correct_answers'] == 1
    assert top['accuracy'] == pytest.approx(33.3)
    assert top['grade'] == 'F'


def test_notifications_follow_each_transition(controller, notifier):
    code, host_id, (ann, _) = _started_room(controller)
    controller.submit_answer(code, ann, 1, 2000)
    controller.next_question(code, host_id)
    assert notifier.names(code) == [
        'room_created', 'player_joined', 'player_joined', 'game_started', 'answer_submitted', 'question_advanced',
    ]


def test_host_leaving_running_game_closes_it(controller, notifier):
    code, host_id, (ann, _) = _started_room(controller)
    assert controller.leave_room(code, host_id) == {'action': 'room_closed'}
    state = controller.get_room_state(code)
    assert state['status'] == 'finished'
    assert state['question_start_time'] is None
    with pytest.raises(RoomError):
        controller.submit_answer(code, ann, 1, 2000)
    with pytest.raises(RoomError):
        controller.next_question(code, host_id)
    assert notifier.names(code)[-1] == 'room_closed'


@pytest.mark.parametrize('time_ms', [float('nan'), float('inf'), 10 ** 400, -1, '2000', True])
def test_unusable_answer_times_are_rejected(controller, time_ms):
    code, host_id, (ann, _) = _started_room(controller)
    with pytest.raises(ValidationError):
        controller.submit_answer(code, ann, 1, time_ms)
    assert controller.get_current_question(code, ann)['has_answered'] is False
