from eventquiz import db
from eventquiz.models import Game

from conftest import three_question_payload


def test_create_game(client):
    res = client.post('/api/games/create', json=three_question_payload())
    assert res.status_code == 201
    data = res.get_json()
    assert len(data['game_code']) == 4
    assert len(data['questions']) == 3
    assert all(q['id'] for q in data['questions'])


def test_create_game_rejects_question_without_single_correct_answer(client):
    payload = three_question_payload()
    payload['questions'][0]['answers'] = [{'text': 'a'}, {'text': 'b'}]
    res = client.post('/api/games/create', json=payload)
    assert res.status_code == 400
    assert res.get_json()['errorCode'] == 'VALIDATION_ERROR'


def test_register_hides_correct_answers(make_quiz):
    quiz = make_quiz()
    res = quiz.register('visitor-1', nickname='Alice')
    assert res.status_code == 200
    data = res.get_json()
    assert data['player']['id'] == 'visitor-1'
    assert data['player']['status'] == 'registered'
    assert len(data['questions']) == 3
    for question in data['questions']:
        assert all('is_correct' not in a for a in question['answers'])


def test_register_twice_resumes_same_player(make_quiz):
    quiz = make_quiz()
    quiz.register('visitor-1')
    quiz.answer('visitor-1', 0, response_time_ms=9000)
    res = quiz.register('visitor-1')
    assert res.status_code == 200
    assert res.get_json()['player']['current_score'] == 135


def test_register_validates_nickname_and_phase(make_quiz, client):
    quiz = make_quiz()
    res = quiz.register('visitor-1', nickname='A')
    assert res.get_json()['errorCode'] == 'NICKNAME_INVALID'

    client.post(f'/api/games/{quiz.code}/phase', json={'phase': 'finished'})
    res = quiz.register('visitor-2')
    assert res.status_code == 400
    assert res.get_json()['errorCode'] == 'GAME_NOT_OPEN'


def test_answer_contract(make_quiz):
    quiz = make_quiz()
    quiz.register('visitor-1')
    res = quiz.answer('visitor-1', 0, response_time_ms=9000)
    assert res.status_code == 200
    data = res.get_json()
    assert data == {
        'success': True,
        'isCorrect': True,
        'correctAnswerId': quiz.correct(0),
        'basePoints': 100,
        'timeBonus': 35,
        'streakMultiplier': 1.0,
        'totalPoints': 135,
        'newTotalScore': 135,
        'newStreak': 1,
        'isGameComplete': False,
    }


def test_wrong_answer_reveals_correct_answer_and_resets_streak(make_quiz):
    quiz = make_quiz()
    quiz.register('visitor-1')
    quiz.answer('visitor-1', 0, response_time_ms=9000)
    data = quiz.answer('visitor-1', 1, correct=False).get_json()
    assert data['isCorrect'] is False
    assert data['correctAnswerId'] == quiz.correct(1)
    assert data['totalPoints'] == 0
    assert data['newStreak'] == 0
    assert data['newTotalScore'] == 135

    player = quiz.player('visitor-1')
    assert player['current_streak'] == 0
    assert player['max_streak'] == 1
    assert player['wrong_answers'] == 1


def test_streak_builds_across_answers(make_quiz):
    quiz = make_quiz()
    quiz.register('visitor-1')
    first = quiz.answer('visitor-1', 0, response_time_ms=9000).get_json()
    second = quiz.answer('visitor-1', 1, response_time_ms=9000).get_json()
    third = quiz.answer('visitor-1', 2, response_time_ms=3000).get_json()
    assert first['totalPoints'] == 135
    assert second['streakMultiplier'] == 1.2
    assert second['totalPoints'] == 162
    assert third['streakMultiplier'] == 1.5
    assert third['totalPoints'] == 218
    assert third['newTotalScore'] == 135 + 162 + 218

    history = quiz.player('visitor-1')['answers']
    assert [a['streak_label'] for a in history] == ['x1.0', 'x1.2', 'x1.5']
    assert [a['total_points'] for a in history] == [135, 162, 218]


def test_score_never_decreases(make_quiz):
    quiz = make_quiz()
    quiz.register('visitor-1')
    scores = [quiz.answer('visitor-1', idx, correct=idx != 1).get_json()['newTotalScore']
              for idx in range(3)]
    assert scores == sorted(scores)


def test_completion_only_on_last_question(make_quiz):
    quiz = make_quiz()
    quiz.register('visitor-1')
    for idx in range(2):
        data = quiz.answer('visitor-1', idx).get_json()
        assert data['isGameComplete'] is False
        assert 'rank' not in data
    data = quiz.answer('visitor-1', 2).get_json()
    assert data['isGameComplete'] is True
    assert data['rank'] == 1

    player = quiz.player('visitor-1')
    assert player['status'] == 'finished'
    assert player['has_completed'] is True
    assert player['play_count'] == 1
    assert player['final_rank'] == 1
    assert player['finished_at'] is not None
    assert len(player['answers']) == 3


def test_answers_after_completion_are_rejected(make_quiz):
    quiz = make_quiz()
    quiz.register('visitor-1')
    for idx in range(3):
        quiz.answer('visitor-1', idx)
    res = quiz.answer('visitor-1', 2)
    assert res.status_code == 400
    assert res.get_json()['errorCode'] == 'ALREADY_ANSWERED'

    player = quiz.player('visitor-1')
    assert player['play_count'] == 1
    assert len(player['answers']) == 3


def test_completed_player_cannot_register_again(make_quiz):
    quiz = make_quiz()
    quiz.register('visitor-1')
    for idx in range(3):
        quiz.answer('visitor-1', idx)
    res = quiz.register('visitor-1')
    assert res.status_code == 400
    assert res.get_json()['errorCode'] == 'ALREADY_PLAYED'


def test_duplicate_answer_is_rejected_without_side_effects(make_quiz):
    quiz = make_quiz()
    quiz.register('visitor-1')
    quiz.answer('visitor-1', 0, response_time_ms=9000)
    res = quiz.answer('visitor-1', 0, correct=False)
    assert res.status_code == 400
    body = res.get_json()
    assert body['success'] is False
    assert body['errorCode'] == 'ALREADY_ANSWERED'

    player = quiz.player('visitor-1')
    assert player['current_score'] == 135
    assert player['current_streak'] == 1
    assert len(player['answers']) == 1


def test_unknown_player(make_quiz):
    quiz = make_quiz()
    res = quiz.answer('nobody', 0)
    assert res.status_code == 404
    assert res.get_json()['errorCode'] == 'PLAYER_NOT_FOUND'


def test_unknown_question(make_quiz, client):
    quiz = make_quiz()
    quiz.register('visitor-1')
    res = client.post('/api/games/answer', json={
        'gameId': quiz.code, 'playerId': 'visitor-1', 'questionId': 'q_missing',
        'questionIndex': 0, 'answerId': 'a_missing', 'responseTimeMs': 100,
    })
    assert res.status_code == 404
    assert res.get_json()['errorCode'] == 'QUESTION_NOT_FOUND'


def test_inactive_question_is_not_answerable(make_quiz, flask_app):
    quiz = make_quiz()
    quiz.register('visitor-1')
    question = quiz.question_row(1)
    question.is_active = False
    db.session.commit()
    res = quiz.answer('visitor-1', 1)
    assert res.status_code == 404
    assert res.get_json()['errorCode'] == 'QUESTION_NOT_FOUND'
    # Two active questions left: the second answer completes the game
    quiz.answer('visitor-1', 0)
    assert quiz.answer('visitor-1', 2).get_json()['isGameComplete'] is True


def test_answers_rejected_when_game_not_active(make_quiz, client):
    quiz = make_quiz()
    quiz.register('visitor-1')
    client.post(f'/api/games/{quiz.code}/phase', json={'phase': 'results'})
    res = quiz.answer('visitor-1', 0)
    assert res.status_code == 400
    assert res.get_json()['errorCode'] == 'GAME_NOT_ACTIVE'
    assert quiz.player('visitor-1')['current_score'] == 0


def test_unknown_game(client):
    res = client.post('/api/games/answer', json={
        'gameId': 'ZZZZ', 'playerId': 'visitor-1', 'questionId': 'q1',
        'questionIndex': 0, 'answerId': 'a1', 'responseTimeMs': 100,
    })
    assert res.status_code == 404
    assert res.get_json()['errorCode'] == 'GAME_NOT_ACTIVE'


def test_malformed_submission(make_quiz, client):
    quiz = make_quiz()
    quiz.register('visitor-1')
    res = client.post('/api/games/answer', json={
        'gameId': quiz.code, 'playerId': 'visitor-1', 'questionId': quiz.questions[0]['id'],
        'questionIndex': 0, 'answerId': quiz.correct(0),
    })
    assert res.status_code == 400
    body = res.get_json()
    assert body['errorCode'] == 'VALIDATION_ERROR'
    assert 'responseTimeMs' in body['error']

    res = quiz.answer('visitor-1', 0, response_time_ms=-5)
    assert res.get_json()['errorCode'] == 'VALIDATION_ERROR'
    assert quiz.player('visitor-1')['answers'] == []


def test_question_without_correct_answer_is_a_server_error(make_quiz):
    quiz = make_quiz()
    quiz.register('visitor-1')
    option = next(a for a in quiz.question_row(0).answers if a.id == quiz.correct(0))
    option.is_correct = False
    db.session.commit()

    res = quiz.answer('visitor-1', 0)
    assert res.status_code == 500
    assert 'errorCode' not in res.get_json()
    player = quiz.player('visitor-1')
    assert player['current_score'] == 0
    assert player['answers'] == []


def test_question_points_override(make_quiz):
    payload_questions = three_question_payload()['questions']
    payload_questions[0]['points'] = 250
    quiz = make_quiz(questions=payload_questions, scoring={'mode': 'simple'})
    quiz.register('visitor-1')
    assert quiz.answer('visitor-1', 0).get_json()['totalPoints'] == 250
    assert quiz.answer('visitor-1', 1).get_json()['totalPoints'] == 100


def test_list_players(make_quiz, client):
    quiz = make_quiz()
    quiz.register('visitor-1', nickname='Alice')
    quiz.register('visitor-2', nickname='Bob')
    players = client.get(f'/api/games/{quiz.code}/players').get_json()
    assert [p['nickname'] for p in players] == ['Alice', 'Bob']


def test_get_game(make_quiz, client):
    quiz = make_quiz()
    data = client.get(f'/api/games/{quiz.code.lower()}').get_json()
    assert data['game_code'] == quiz.code
    assert data['phase'] == 'playing'
    assert data['active_questions'] == 3
    assert data['scoring']['mode'] == 'time_and_streak'


def _explicit_ids_payload():
    payload = three_question_payload()
    for q_idx, question in enumerate(payload['questions'], start=1):
        question['id'] = f'q{q_idx}'
        for a_idx, option in enumerate(question['answers'], start=1):
            option['id'] = f'a{a_idx}'
    return payload


def test_question_ids_are_scoped_to_their_game(client):
    first = client.post('/api/games/create', json=_explicit_ids_payload())
    second = client.post('/api/games/create', json=_explicit_ids_payload())
    assert first.status_code == 201
    assert second.status_code == 201

    codes = [first.get_json()['game_code'], second.get_json()['game_code']]
    for code in codes:
        game = Game.query.filter_by(game_code=code).one()
        assert [q.id for q in game.questions] == ['q1', 'q2', 'q3']

    code = codes[1]
    client.post(f'/api/games/{code}/register', json={
        'playerId': 'visitor-1', 'nickname': 'Alice', 'avatarValue': '🧠'})
    res = client.post('/api/games/answer', json={
        'gameId': code, 'playerId': 'visitor-1', 'questionId': 'q2',
        'questionIndex': 1, 'answerId': 'a2', 'responseTimeMs': 9000,
    })
    assert res.status_code == 200
    assert res.get_json()['isCorrect'] is True
    assert res.get_json()['correctAnswerId'] == 'a2'


def test_duplicate_question_ids_in_one_game_are_rejected(client):
    payload = _explicit_ids_payload()
    payload['questions'][2]['id'] = 'q1'
    res = client.post('/api/games/create', json=payload)
    assert res.status_code == 400
    assert res.get_json()['errorCode'] == 'VALIDATION_ERROR'


def test_fractional_response_time_is_rounded(make_quiz):
    quiz = make_quiz()
    quiz.register('visitor-1')
    res = quiz.answer('visitor-1', 0, response_time_ms=1234.5)
    assert res.status_code == 200
    player = quiz.player('visitor-1')
    assert player['answers'][0]['response_time_ms'] == 1235
    assert player['total_time_ms'] == 1235


def test_leaderboard_limit_must_be_positive(make_quiz, client):
    quiz = make_quiz()
    for limit in ('0', '-3', 'ten'):
        res = client.get(f'/api/games/{quiz.code}/leaderboard', query_string={'limit': limit})
        assert res.status_code == 400
        assert res.get_json()['errorCode'] == 'VALIDATION_ERROR'
    assert quiz.leaderboard(limit=1)['success'] is True
