"""
内存 mail 后端（测试 / 轻量使用）。

约束：
- 进程内有序列表，每条消息携带自己的状态标记（open/read/archived）；
- 单把 `threading.Lock` 在每个操作的全程持有（操作都很短且不阻塞，粗粒度锁即可）；
- `broken=True`（见 `InMemoryMailProvider.broken()`）时所有操作无条件失败，且不改变内部状态。
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import List, Literal

from agent_mail.core.contracts import Message
from agent_mail.core.errors import AlreadyArchivedError, MessageNotFoundError, ProviderUnavailableError
from agent_mail.core.utils import now_utc

MessageStatus = Literal["open", "read", "archived"]


@dataclass
class _Entry:
    """内部存储条目：不可变消息 + 可变状态。"""

    message: Message
    status: MessageStatus = "open"


class InMemoryMailProvider:
    """
    内存 mail provider。

    说明：
    - id 由实例内单调递增计数器生成：`fake-1`、`fake-2`……
    - 已读/已归档的消息对 `read` 而言等同于不存在（`MessageNotFoundError`）。
    - read 与 archive 收敛到同一个终止态：对非 open 消息 `archive` 一律抛 `AlreadyArchivedError`。
    """

    def __init__(self, *, broken: bool = False) -> None:
        """
        创建内存 provider。

        参数：
        - broken：故障注入模式；为 True 时所有操作抛 `ProviderUnavailableError`
        """

        self._lock = threading.Lock()
        self._entries: List[_Entry] = []
        self._seq = 0
        self._broken = bool(broken)

    @classmethod
    def broken(cls) -> "InMemoryMailProvider":
        """返回所有操作都失败的 provider（用于测试错误路径）。"""

        return cls(broken=True)

    def _ensure_available(self) -> None:
        """故障注入检查（调用方需持有锁）。"""

        if self._broken:
            raise ProviderUnavailableError("mail provider unavailable")

    def _find(self, message_id: str) -> _Entry:
        """按 id 查找条目；调用方需持有锁。"""

        for entry in self._entries:
            if entry.message.id == message_id:
                return entry
        raise MessageNotFoundError(f"message {message_id!r} not found", details={"id": message_id})

    def send(self, from_: str, to: str, body: str) -> Message:
        """在内存中创建一条消息。"""

        with self._lock:
            self._ensure_available()
            self._seq += 1
            msg = Message(id=f"fake-{self._seq}", from_=from_, to=to, body=body, created_at=now_utc())
            self._entries.append(_Entry(message=msg))
            return msg

    def inbox(self, recipient: str) -> List[Message]:
        """返回 recipient 的 open 消息（按创建顺序）。"""

        with self._lock:
            self._ensure_available()
            return [e.message for e in self._entries if e.status == "open" and e.message.to == recipient]

    def read(self, message_id: str) -> Message:
        """返回消息并标记为已读；非 open 消息视为不存在。"""

        with self._lock:
            self._ensure_available()
            entry = self._find(message_id)
            if entry.status != "open":
                raise MessageNotFoundError(f"message {message_id!r} not found", details={"id": message_id})
            entry.status = "read"
            return entry.message

    def archive(self, message_id: str) -> None:
        """不阅读直接归档。"""

        with self._lock:
            self._ensure_available()
            entry = self._find(message_id)
            if entry.status != "open":
                raise AlreadyArchivedError("already archived", details={"id": message_id, "status": entry.status})
            entry.status = "archived"

    def check(self, recipient: str) -> List[Message]:
        """与 inbox 相同（内存后端的 inbox 本身不改变状态）。"""

        return self.inbox(recipient)

    def messages(self) -> List[Message]:
        """返回当前存储的全部消息快照（含已读/已归档）。"""

        with self._lock:
            return [e.message for e in self._entries]
