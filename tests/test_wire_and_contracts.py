from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from agent_mail import Message
from agent_mail.core.errors import ProtocolError
from agent_mail.core.utils import to_rfc3339
from agent_mail.exec.wire import marshal_send_input, unmarshal_message, unmarshal_messages


def test_marshal_send_input_uses_wire_keys() -> None:
    data = marshal_send_input("alice", "hello world")

    assert json.loads(data) == {"from": "alice", "body": "hello world"}
    assert b'"from":"alice"' in data


def test_marshal_send_input_keeps_non_ascii_body() -> None:
    assert json.loads(marshal_send_input("alice", "你好")) == {"from": "alice", "body": "你好"}


def test_unmarshal_message() -> None:
    m = unmarshal_message('{"id":"m-1","from":"human","to":"mayor","body":"test","created_at":"2025-06-15T10:30:00Z"}')

    assert (m.id, m.from_, m.to, m.body) == ("m-1", "human", "mayor", "test")
    assert m.created_at == datetime(2025, 6, 15, 10, 30, tzinfo=timezone.utc)


def test_unmarshal_message_normalizes_offsets_and_ignores_extra_keys() -> None:
    m = unmarshal_message(
        '{"id":"m-1","from":"a","to":"b","body":"x","created_at":"2025-06-15T12:30:00+02:00","priority":"high"}'
    )

    assert m.created_at == datetime(2025, 6, 15, 10, 30, tzinfo=timezone.utc)
    assert m.created_at.utcoffset() == timedelta(0)


def test_unmarshal_messages() -> None:
    msgs = unmarshal_messages(
        '[{"id":"m-1","from":"a","to":"b","body":"hello","created_at":"2025-06-15T10:30:00Z"},'
        '{"id":"m-2","from":"c","to":"d","body":"world","created_at":"2025-06-15T11:00:00Z"}]'
    )

    assert [m.id for m in msgs] == ["m-1", "m-2"]


def test_unmarshal_messages_null_is_empty() -> None:
    assert unmarshal_messages("null") == []
    assert unmarshal_messages("[]") == []


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        '{"id":"m-1","from":"a","to":"b","body":"x"}',
        '{"id":"m-1","from":"a","to":"b","body":"x","created_at":"yesterday"}',
        "[]",
    ],
)
def test_unmarshal_message_rejects_bad_shapes(raw: str) -> None:
    with pytest.raises(ProtocolError) as excinfo:
        unmarshal_message(raw)
    assert isinstance(excinfo.value.__cause__, ValidationError)


def test_unmarshal_messages_rejects_object() -> None:
    with pytest.raises(ProtocolError):
        unmarshal_messages('{"id":"m-1"}')


def test_message_wire_projection_uses_rfc3339_utc() -> None:
    m = Message(id="m-1", from_="alice", to="bob", body="hi", created_at=datetime(2025, 6, 15, 10, 30))

    wire = m.to_wire()
    assert wire == {"id": "m-1", "from": "alice", "to": "bob", "body": "hi", "created_at": "2025-06-15T10:30:00Z"}
    assert Message.from_json(m.to_json()) == m


def test_message_is_immutable() -> None:
    m = Message(id="m-1", from_="alice", to="bob", body="hi", created_at=datetime.now(timezone.utc))

    with pytest.raises(ValidationError):
        m.body = "changed"  # type: ignore[misc]


def test_to_rfc3339_treats_naive_as_utc() -> None:
    assert to_rfc3339(datetime(2025, 1, 2, 3, 4, 5)) == "2025-01-02T03:04:05Z"
    assert to_rfc3339(datetime(2025, 1, 2, 5, 4, 5, tzinfo=timezone(timedelta(hours=2)))) == "2025-01-02T03:04:05Z"
