"""
MailProvider 一致性测试套件（与后端无关）。

用法（pytest）：
- 每个实现的测试文件对 `CONFORMANCE_CASES` 做 parametrize，并把自己的 factory 传给 `run_conformance_case`；
- factory 每次返回一个全新的空 provider。

说明：
- 本模块是跨后端行为的权威定义；新增后端只要通过全部 case 即视为等价。
- 依赖 pytest（`pytest.raises`）；仅供测试使用，需安装 `agent-mail-sdk[test]`。
"""

from __future__ import annotations

from datetime import timedelta
from typing import Callable, Dict

import pytest

from agent_mail.core.errors import AlreadyArchivedError, MailError
from agent_mail.core.provider import MailProvider
from agent_mail.core.utils import now_utc

ProviderFactory = Callable[[], MailProvider]

_CREATED_AT_TOLERANCE = timedelta(minutes=1)


# --- Group 1: send ---


def send_returns_matching_fields(p: MailProvider) -> None:
    """send 返回的字段与输入一致，且 id 非空。"""

    m = p.send("alice", "bob", "hello")
    assert m.id, "send returned empty id"
    assert m.from_ == "alice"
    assert m.to == "bob"
    assert m.body == "hello"


def send_assigns_unique_ids(p: MailProvider) -> None:
    """两次 send 不产生相同 id。"""

    m1 = p.send("alice", "bob", "first")
    m2 = p.send("alice", "bob", "second")
    assert m1.id != m2.id, f"two sends produced same id {m1.id!r}"


def send_sets_recent_created_at(p: MailProvider) -> None:
    """created_at 在调用时刻 ±1 分钟内。"""

    before = now_utc() - _CREATED_AT_TOLERANCE
    m = p.send("alice", "bob", "timestamped")
    after = now_utc() + _CREATED_AT_TOLERANCE
    assert before <= m.created_at <= after, f"created_at={m.created_at} not within 1 minute of now"


# --- Group 2: inbox ---


def inbox_empty_returns_empty(p: MailProvider) -> None:
    """空后端的 inbox 返回空列表，而不是错误。"""

    assert p.inbox("bob") == []


def inbox_returns_messages_sent_to_recipient(p: MailProvider) -> None:
    """inbox 包含发给该收件人的消息。"""

    sent = p.send("alice", "bob", "for bob")
    msgs = p.inbox("bob")
    assert len(msgs) == 1
    assert msgs[0].id == sent.id


def inbox_filters_by_recipient(p: MailProvider) -> None:
    """inbox 只反映发给查询收件人的消息。"""

    p.send("alice", "bob", "for bob")
    p.send("alice", "charlie", "for charlie")
    msgs = p.inbox("bob")
    assert len(msgs) == 1
    assert msgs[0].to == "bob"


def inbox_excludes_read_messages(p: MailProvider) -> None:
    """已读消息不再出现在 inbox。"""

    sent = p.send("alice", "bob", "will be read")
    p.read(sent.id)
    assert p.inbox("bob") == []


# --- Group 3: check ---


def check_returns_unread_messages(p: MailProvider) -> None:
    """check 返回未读消息。"""

    sent = p.send("alice", "bob", "check me")
    msgs = p.check("bob")
    assert len(msgs) == 1
    assert msgs[0].id == sent.id


def check_does_not_mark_as_read(p: MailProvider) -> None:
    """check 任意多次都不改变后续 inbox 的结果。"""

    sent = p.send("alice", "bob", "peek")
    for _ in range(3):
        assert [m.id for m in p.check("bob")] == [sent.id]
    msgs = p.inbox("bob")
    assert len(msgs) == 1, f"inbox after check = {len(msgs)} messages, want 1"


# --- Group 4: read ---


def read_returns_correct_message(p: MailProvider) -> None:
    """read 返回正确的字段值。"""

    sent = p.send("alice", "bob", "read me")
    m = p.read(sent.id)
    assert m.id == sent.id
    assert m.from_ == "alice"
    assert m.to == "bob"
    assert m.body == "read me"


def read_marks_as_read(p: MailProvider) -> None:
    """read 之后消息从 inbox 移除。"""

    sent = p.send("alice", "bob", "once")
    p.read(sent.id)
    assert p.inbox("bob") == []


def read_unknown_id_raises(p: MailProvider) -> None:
    """未知 id 的 read 失败。"""

    with pytest.raises(MailError):
        p.read("nonexistent")


# --- Group 5: archive ---


def archive_removes_from_inbox(p: MailProvider) -> None:
    """archive 之后消息从 inbox 移除。"""

    sent = p.send("alice", "bob", "archive me")
    p.archive(sent.id)
    assert p.inbox("bob") == []


def archive_already_archived_raises(p: MailProvider) -> None:
    """第二次 archive 抛区分条件 `AlreadyArchivedError`。"""

    sent = p.send("alice", "bob", "double archive")
    p.archive(sent.id)
    with pytest.raises(AlreadyArchivedError):
        p.archive(sent.id)


def archive_unknown_id_raises(p: MailProvider) -> None:
    """未知 id 的 archive 失败。"""

    with pytest.raises(MailError):
        p.archive("nonexistent")


# --- Group 6: lifecycle ---


def lifecycle_send_inbox_read_inbox_empty(p: MailProvider) -> None:
    """send → inbox → read → inbox 为空。"""

    sent = p.send("alice", "bob", "lifecycle")
    assert len(p.inbox("bob")) == 1
    m = p.read(sent.id)
    assert m.body == "lifecycle"
    assert p.inbox("bob") == []


def lifecycle_send_check_archive_inbox_empty(p: MailProvider) -> None:
    """send → check → archive → inbox 为空。"""

    sent = p.send("alice", "bob", "check-archive")
    assert len(p.check("bob")) == 1
    p.archive(sent.id)
    assert p.inbox("bob") == []


CONFORMANCE_CASES: Dict[str, Callable[[MailProvider], None]] = {
    fn.__name__: fn
    for fn in (
        send_returns_matching_fields,
        send_assigns_unique_ids,
        send_sets_recent_created_at,
        inbox_empty_returns_empty,
        inbox_returns_messages_sent_to_recipient,
        inbox_filters_by_recipient,
        inbox_excludes_read_messages,
        check_returns_unread_messages,
        check_does_not_mark_as_read,
        read_returns_correct_message,
        read_marks_as_read,
        read_unknown_id_raises,
        archive_removes_from_inbox,
        archive_already_archived_raises,
        archive_unknown_id_raises,
        lifecycle_send_inbox_read_inbox_empty,
        lifecycle_send_check_archive_inbox_empty,
    )
}


def run_conformance_case(name: str, factory: ProviderFactory) -> None:
    """用 factory 生成的全新 provider 运行单个 case。"""

    CONFORMANCE_CASES[name](factory())


def run_provider_tests(factory: ProviderFactory) -> None:
    """按定义顺序运行全部 case（每个 case 一个全新 provider）。"""

    for name in CONFORMANCE_CASES:
        run_conformance_case(name, factory)
