"""
MailProvider 能力契约。

设计目标：
- 后端（内存 / 记录存储 / exec 委托）互相可替换，调用方只持有 `MailProvider` 句柄；
- 契约只包含五个方法，不为任何后端添加专属方法；
- 主要扩展点是 exec 脚本协议（见 `agent_mail.exec`），Python 协议用于代码组织与可测试性。
"""

from __future__ import annotations

from typing import List, Protocol, runtime_checkable

from agent_mail.core.contracts import Message


@runtime_checkable
class MailProvider(Protocol):
    """
    mail 后端协议。

    约束：
    - 对任意 recipient，`inbox`/`check` 返回的恰好是发给它且仍为 open 的消息（无则返回空列表，不是错误）。
    - `read` 与 `archive` 都会把消息移出 inbox，二者是互斥的终止迁移。
    - 第二次 `archive` MUST 抛出 `AlreadyArchivedError`。
    """

    def send(self, from_: str, to: str, body: str) -> Message:
        """创建一条 from_ → to 的消息，返回带 id 与 created_at 的消息。"""

        ...

    def inbox(self, recipient: str) -> List[Message]:
        """返回 recipient 的全部未读消息（不改变状态）。"""

        ...

    def read(self, message_id: str) -> Message:
        """按 message_id 取回消息并标记为已读；未知 id 抛 `MessageNotFoundError`。"""

        ...

    def archive(self, message_id: str) -> None:
        """不阅读直接归档消息；已归档时抛 `AlreadyArchivedError`。"""

        ...

    def check(self, recipient: str) -> List[Message]:
        """
        返回 recipient 的未读消息（hook 注入 / 被动轮询用）。

        说明：
        - 内容与语义与 `inbox` 完全一致，但 MUST NOT 改变任何消息的状态。
        """

        ...
