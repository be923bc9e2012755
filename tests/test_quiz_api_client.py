import json

import pytest
import requests

from scholar_quiz.core.errors import QuizApiError
from scholar_quiz.core.services.quiz_api_client import (
    QuizApiClient,
    QuizSubjectPayload,
    StartQuizPayload,
    SubmitQuizPayload,
)


def make_response(status=200, body=None, reason="OK"):
    response = requests.Response()
    response.status_code = status
    response.reason = reason
    response.url = "https://api.example.test"
    if body is not None:
        response._content = json.dumps(body).encode()
        response.headers["Content-Type"] = "application/json; charset=utf-8"
    else:
        response._content = b""
    return response


class FakeHttpSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []
        self.closed = False

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        outcome = self.responses.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def close(self):
        self.closed = True


def make_client(*responses, token="secret", on_unauthorized=None):
    session = FakeHttpSession(*responses)
    client = QuizApiClient(
        base_url="https://api.example.test/api/",
        token_provider=lambda: token,
        on_unauthorized=on_unauthorized,
        session=session,
    )
    return client, session


def start_payload():
    return StartQuizPayload(
        mode="exam",
        subjects=[QuizSubjectPayload(subject_id="math", year=2021, number_of_questions=20)],
        duration_in_minutes=60,
    )


def test_start_quiz_sends_camel_case_body_and_token():
    body = {"quiz": {"_id": "abc", "groupedQuestions": [{"subjectId": "math", "questions": []}, "junk"]}}
    client, session = make_client(make_response(body=body))

    started = client.start_quiz(start_payload())

    method, url, kwargs = session.calls[0]
    assert (method, url) == ("POST", "https://api.example.test/api/quiz/start")
    assert kwargs["json"] == {
        "mode": "exam",
        "subjects": [{"subjectId": "math", "year": 2021, "numberOfQuestions": 20}],
        "durationInMinutes": 60,
    }
    assert kwargs["headers"]["Authorization"] == "Bearer secret"
    assert started.quiz_id == "abc"
    assert started.grouped_questions == [{"subjectId": "math", "questions": []}]


def test_start_quiz_accepts_unwrapped_quiz():
    client, _ = make_client(make_response(body={"id": 7, "groupedQuestions": None}))

    started = client.start_quiz(start_payload())

    assert started.quiz_id == "7"
    assert started.grouped_questions == []


def test_start_quiz_without_id_is_an_error():
    client, _ = make_client(make_response(body={"quiz": {"groupedQuestions": []}}))

    with pytest.raises(QuizApiError, match="quiz id"):
        client.start_quiz(start_payload())


def test_error_message_comes_from_body():
    client, _ = make_client(
        make_response(400, {"message": "Only 2 questions available for subject Maths"}, reason="Bad Request")
    )

    with pytest.raises(QuizApiError) as excinfo:
        client.start_quiz(start_payload())

    assert excinfo.value.status == 400
    assert "available for subject" in excinfo.value.message
    assert not excinfo.value.is_transport_failure


def test_nested_error_message_and_reason_fallback():
    client, _ = make_client(
        make_response(500, {"data": {"message": "database down"}}, reason="Server Error"),
        make_response(503, None, reason="Service Unavailable"),
    )

    with pytest.raises(QuizApiError, match="database down"):
        client.list_subjects()
    with pytest.raises(QuizApiError, match="Service Unavailable"):
        client.list_subjects()


def test_unauthorized_notifies_host():
    expired = []
    client, _ = make_client(make_response(401, {"message": "jwt expired"}), on_unauthorized=lambda: expired.append(True))

    with pytest.raises(QuizApiError) as excinfo:
        client.list_subjects()

    assert excinfo.value.status == 401
    assert expired == [True]


def test_transport_failure_has_no_status():
    client, _ = make_client(requests.ConnectionError("connection refused"))

    with pytest.raises(QuizApiError) as excinfo:
        client.fetch_questions("math", 2020)

    assert excinfo.value.is_transport_failure


def test_missing_token_sends_no_authorization_header():
    client, session = make_client(make_response(body={"data": []}), token=None)

    client.list_subjects()

    assert "Authorization" not in session.calls[0][2]["headers"]


def test_submit_quiz_posts_answers():
    client, session = make_client(make_response(body={"score": 50}))

    result = client.submit_quiz(
        "abc", SubmitQuizPayload(answers={"q1": "4"}, time_spent_per_subject={"math": 42})
    )

    method, url, kwargs = session.calls[0]
    assert url == "https://api.example.test/api/quiz/abc/submit"
    assert kwargs["json"] == {"answers": {"q1": "4"}, "timeSpentPerSubject": {"math": 42}}
    assert result == {"score": 50}


def test_catalogue_endpoints_unwrap_data():
    client, session = make_client(
        make_response(body={"data": [{"_id": "math"}, "bad"]}),
        make_response(body={"data": [{"_id": "q1"}]}),
        make_response(body={"data": [{"subjectId": "math", "years": ["2020", 2021]}, {"years": [1]}]}),
    )

    assert client.list_subjects() == [{"_id": "math"}]
    assert client.fetch_questions("math", 2020, limit=25) == [{"_id": "q1"}]
    assert client.available_years(["math", "bio"]) == {"math": [2020, 2021]}

    assert session.calls[1][2]["params"] == {"subjectId": "math", "year": 2020, "limit": 25}
    assert session.calls[2][2]["params"] == {"subjectIds": "math,bio"}


def test_close_closes_http_session():
    client, session = make_client()

    client.close()

    assert session.closed
