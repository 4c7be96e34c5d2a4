"""
记录存储后端（StoreMailProvider）。

说明：
- 内置默认后端：消息以 `type="message"` 的记录保存，无需子进程；
- 映射：body → title，to → assignee，from → from_；
- read 与 archive 都通过 `store.close` 实现，二者收敛到同一个 `closed` 终止态。
"""

from __future__ import annotations

import threading
from typing import List

from agent_mail.core.contracts import Message
from agent_mail.core.errors import (
    AlreadyArchivedError,
    MailError,
    MessageNotFoundError,
    ProviderUnavailableError,
    RecordNotFoundError,
    StoreError,
)
from agent_mail.core.utils import now_utc
from agent_mail.store.protocol import Record, RecordStore

MESSAGE_TYPE = "message"


def _wrap_store_error(prefix: str, exc: StoreError, record_id: str | None = None) -> MailError:
    """把存储异常包装为带操作前缀的 mail 异常（不存在 → MessageNotFoundError）。"""

    details = {"id": record_id} if record_id is not None else {}
    if isinstance(exc, RecordNotFoundError):
        return MessageNotFoundError(f"{prefix}: {exc}", details=details)
    return ProviderUnavailableError(f"{prefix}: {exc}", details=details)


def record_to_message(record: Record) -> Message:
    """把记录投影为 `Message`。"""

    return Message(
        id=record.id,
        from_=record.from_,
        to=record.assignee,
        body=record.title,
        created_at=record.created_at or now_utc(),
    )


class StoreMailProvider:
    """
    基于 `RecordStore` 的 mail provider。

    参数：
    - store：记录存储（独占使用；不与其它 provider 实例共享可变状态）
    """

    def __init__(self, store: RecordStore) -> None:
        """创建 provider。"""

        self._store = store
        self._lock = threading.Lock()

    def send(self, from_: str, to: str, body: str) -> Message:
        """创建一条 message 记录。"""

        with self._lock:
            try:
                record = self._store.create(Record(title=body, type=MESSAGE_TYPE, assignee=to, from_=from_))
            except StoreError as exc:
                raise _wrap_store_error("storemail send", exc) from exc
            return record_to_message(record)

    def inbox(self, recipient: str) -> List[Message]:
        """返回 recipient 的全部 open 消息。"""

        with self._lock:
            return self._filter_messages(recipient)

    def read(self, message_id: str) -> Message:
        """取回消息并关闭记录（已关闭的记录直接返回，幂等）。"""

        with self._lock:
            try:
                record = self._store.get(message_id)
            except StoreError as exc:
                raise _wrap_store_error("storemail read", exc, message_id) from exc
            if record.status != "closed":
                try:
                    self._store.close(message_id)
                except StoreError as exc:
                    raise _wrap_store_error("storemail read: marking as read", exc, message_id) from exc
            return record_to_message(record)

    def archive(self, message_id: str) -> None:
        """不阅读直接关闭 message 记录。"""

        with self._lock:
            try:
                record = self._store.get(message_id)
            except StoreError as exc:
                raise _wrap_store_error("storemail archive", exc, message_id) from exc
            if record.type != MESSAGE_TYPE:
                raise MessageNotFoundError(
                    f"storemail archive: record {message_id} is not a message",
                    details={"id": message_id, "type": record.type},
                )
            if record.status == "closed":
                raise AlreadyArchivedError("already archived", details={"id": message_id})
            try:
                self._store.close(message_id)
            except StoreError as exc:
                raise _wrap_store_error("storemail archive", exc, message_id) from exc

    def check(self, recipient: str) -> List[Message]:
        """返回 recipient 的 open 消息（纯投影，不改变状态）。"""

        with self._lock:
            return self._filter_messages(recipient)

    def _filter_messages(self, recipient: str) -> List[Message]:
        """列出 `type=message, status=open, assignee=recipient` 的记录；调用方需持有锁。"""

        try:
            records = self._store.list()
        except StoreError as exc:
            raise _wrap_store_error("storemail: listing records", exc) from exc
        return [
            record_to_message(r)
            for r in records
            if r.type == MESSAGE_TYPE and r.status == "open" and r.assignee == recipient
        ]
