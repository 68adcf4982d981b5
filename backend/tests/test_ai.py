import json

import pytest
import requests

from trivia.errors import GenerationUnavailable
from trivia.services import ai


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f'{self.status_code} error')

    def json(self):
        return self.payload


def _completion(content):
    return FakeResponse({'choices': [{'message': {'content': json.dumps(content)}}]})


def _raw_question(n):
    return {
        'content': f'Q{n}?',
        'options': [{'id': 'a', 'text': 'One'}, {'id': 'b', 'text': 'Two'}],
        'correctAnswer': 'b',
        'category': 'Science',
        'explanation': 'Two is right.',
    }


@pytest.fixture()
def keyed_app(flask_app):
    flask_app.config['OPENAI_API_KEY'] = 'sk-test'
    return flask_app


def test_generation_without_key_is_unavailable(flask_app):
    with pytest.raises(GenerationUnavailable):
        ai.generate_trivia_questions(['Science'], 'easy', 2)


def test_generation_parses_wrapped_questions(keyed_app, monkeypatch):
    calls = []

    def fake_post(url, headers, json, timeout):
        calls.append((url, headers, json))
        return _completion({'questions': [_raw_question(i) for i in range(3)]})
    monkeypatch.setattr(ai.requests, 'post', fake_post)

    generated = ai.generate_trivia_questions(['Science', 'Art'], 'medium', 2)
    assert len(generated) == 2
    assert generated[0] == {
        'content': 'Q0?',
        'options': [{'id': 'a', 'text': 'One'}, {'id': 'b', 'text': 'Two'}],
        'correct_answer': 'b',
        'category': 'Science',
        'explanation': 'Two is right.',
    }
    url, headers, body = calls[0]
    assert url == 'https://ai.example.test/v1/chat/completions'
    assert headers['Authorization'] == 'Bearer sk-test'
    assert body['model'] == 'test-model'


def test_generation_accepts_bare_list(keyed_app, monkeypatch):
    monkeypatch.setattr(ai.requests, 'post',
                        lambda url, headers, json, timeout: _completion([_raw_question(0)]))
    assert len(ai.generate_trivia_questions(['Science'], 'easy', 1)) == 1


@pytest.mark.parametrize('payload', [
    {'questions': []},
    {'questions': [dict(_raw_question(0), correctAnswer='z')]},
    {'questions': [dict(_raw_question(0), options=[{'id': 'a', 'text': 'Only'}])]},
    {'unexpected': True},
])
def test_generation_rejects_malformed_batches(keyed_app, monkeypatch, payload):
    monkeypatch.setattr(ai.requests, 'post', lambda url, headers, json, timeout: _completion(payload))
    with pytest.raises(GenerationUnavailable):
        ai.generate_trivia_questions(['Science'], 'easy', 1)


def test_generation_wraps_transport_errors(keyed_app, monkeypatch):
    def refuse(url, headers, json, timeout):
        raise requests.ConnectionError('refused')
    monkeypatch.setattr(ai.requests, 'post', refuse)
    with pytest.raises(GenerationUnavailable):
        ai.generate_trivia_questions(['Science'], 'easy', 1)

    monkeypatch.setattr(ai.requests, 'post', lambda url, headers, json, timeout: FakeResponse({}, 500))
    with pytest.raises(GenerationUnavailable):
        ai.generate_trivia_questions(['Science'], 'easy', 1)


def test_fact_check_without_key_trusts_question(flask_app):
    verdict = ai.fact_check_question('Q?', 'A')
    assert verdict['is_accurate'] is True
    assert verdict['confidence'] == 1.0


def test_fact_check_reads_verdict(keyed_app, monkeypatch):
    monkeypatch.setattr(ai.requests, 'post', lambda url, headers, json, timeout: _completion({
        'isAccurate': False, 'confidence': 0.9, 'details': 'Wrong year', 'suggestions': 'Use 1969',
    }))
    assert ai.fact_check_question('When?', '1970', 'Because.') == {
        'is_accurate': False,
        'confidence': 0.9,
        'details': 'Wrong year',
        'suggestions': 'Use 1969',
    }


def test_fact_check_failure_degrades(keyed_app, monkeypatch):
    def too_slow(url, headers, json, timeout):
        raise requests.Timeout('slow')
    monkeypatch.setattr(ai.requests, 'post', too_slow)
    verdict = ai.fact_check_question('Q?', 'A')
    assert verdict['is_accurate'] is True
    assert verdict['confidence'] == 0.8
