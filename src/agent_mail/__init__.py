"""
Agent Mail SDK（Python）。

说明：
- 多 agent 工作区的可插拔消息层（mail）：组件之间收发短文本消息。
- 存储/传输实现可替换，统一实现 `MailProvider` 能力契约。
- 当前已包含：
  - 消息模型与 wire 格式（Message / SendInput）
  - 内存后端（InMemoryMailProvider，含故障注入模式）
  - 记录存储后端（StoreMailProvider，基于通用 create/get/list/close 记录存储）
  - exec 委托后端（ExecMailProvider：每次调用 fork/exec 一个外部脚本，JSON + 退出码协议）
  - 跨后端一致性测试套件（agent_mail.mailtest）
  - 配置加载（YAML overlay + pydantic 校验）与 CLI（`agent-mail`）
"""

from __future__ import annotations

from agent_mail.core.contracts import Message
from agent_mail.core.errors import (
    AlreadyArchivedError,
    ExecCommandError,
    ExecTimeoutError,
    MailError,
    MessageNotFoundError,
    ProtocolError,
    ProviderUnavailableError,
)
from agent_mail.core.fake import InMemoryMailProvider
from agent_mail.core.provider import MailProvider
from agent_mail.core.storemail import StoreMailProvider
from agent_mail.exec.provider import ExecMailProvider

__all__ = [
    "AlreadyArchivedError",
    "ExecCommandError",
    "ExecMailProvider",
    "ExecTimeoutError",
    "InMemoryMailProvider",
    "MailError",
    "MailProvider",
    "Message",
    "MessageNotFoundError",
    "ProtocolError",
    "ProviderUnavailableError",
    "StoreMailProvider",
    "__version__",
]

__version__ = "0.3.0"
