"""Tests for the HTTP record store client."""
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
import requests

from ccd.conversation_types import Fact, FactType
from ccd.record_store import RecordStoreClient, RecordStoreError

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _client(status=200, body=None, exc=None):
    session = MagicMock(spec=requests.Session)
    response = MagicMock()
    response.status_code = status
    response.json.return_value = body or {}
    for method in (session.get, session.post):
        if exc is not None:
            method.side_effect = exc
        else:
            method.return_value = response
    return RecordStoreClient("http://pb.local:8090/", session=session), session


def test_create_fact_posts_payload():
    client, session = _client(status=200, body={"id": "f1"})
    result = client.create_fact("proj1", Fact(FactType.BLOCKER, "ci down", 5, T0))
    assert result == {"id": "f1"}
    url = session.post.call_args.args[0]
    assert url == "http://pb.local:8090/api/collections/extracted_facts/records"
    assert session.post.call_args.kwargs["json"] == {
        "project": "proj1",
        "fact_type": "blocker",
        "content": "ci down",
        "importance": 5,
        "stale": False,
    }


def test_created_status_is_success():
    client, _ = _client(status=201)
    client.create_fact("proj1", Fact(FactType.TODO, "x", 3, T0))


def test_error_status_raises():
    client, _ = _client(status=400)
    with pytest.raises(RecordStoreError):
        client.create_fact("proj1", Fact(FactType.TODO, "x", 3, T0))


def test_transport_error_is_wrapped():
    client, _ = _client(exc=requests.ConnectionError("refused"))
    with pytest.raises(RecordStoreError):
        client.create_session("proj1", "summary", 10, T0, T0)


def test_create_session_payload():
    client, session = _client(status=200)
    client.create_session("proj1", "Continued development work.", 4200, T0, T0)
    payload = session.post.call_args.kwargs["json"]
    assert session.post.call_args.args[0].endswith("/session_history/records")
    assert payload["token_count"] == 4200
    assert payload["session_start"] == "2026-03-01T12:00:00+00:00"


def test_verify_project():
    client, session = _client(status=200)
    client.verify_project("proj1")
    assert session.get.call_args.args[0] == "http://pb.local:8090/api/collections/projects/records/proj1"

    missing, _ = _client(status=404)
    with pytest.raises(RecordStoreError):
        missing.verify_project("nope")
