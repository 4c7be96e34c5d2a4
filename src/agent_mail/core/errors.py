"""
Mail 错误分类（异常类型）。

说明：
- 所有后端对外只抛出 `MailError` 子类；调用方可按类型做程序化处理（例如对 `AlreadyArchivedError` 给出专门提示）。
- 每个后端在抛出前都会给 message 加上“操作前缀”（例如 `storemail read: ...`），底层异常通过 `raise ... from exc` 串联。
- 本层是纯库边界：错误只抛出、不记录日志；展示由调用方负责。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict


class AgentMailError(Exception):
    """SDK 内部错误基类（不建议直接抛出）。"""


@dataclass(frozen=True)
class MailIssue:
    """结构化问题对象（CLI 输出 / 测试断言用）。"""

    code: str
    message: str
    details: Dict[str, Any]


class MailError(AgentMailError):
    """mail 层结构化错误（英文 `code/message/details`）。"""

    default_code = "MAIL_ERROR"

    def __init__(self, message: str, *, code: str | None = None, details: Dict[str, Any] | None = None) -> None:
        """创建 mail 错误。

        参数：
        - `message`：英文错误消息（已包含操作前缀）
        - `code`：稳定错误码；缺省使用子类的 `default_code`
        - `details`：结构化上下文信息
        """

        super().__init__(message)
        self.code = code or self.default_code
        self.message = message
        self.details: Dict[str, Any] = details or {}

    def __str__(self) -> str:
        """返回 message 本身（便于调用方直接拼接展示）。"""

        return self.message

    def to_issue(self) -> MailIssue:
        """把异常转换为可序列化问题对象。"""

        return MailIssue(code=self.code, message=self.message, details=dict(self.details))


class ProviderUnavailableError(MailError):
    """后端当前无法服务任何请求（故障注入的内存后端、脚本无法启动等）。"""

    default_code = "MAIL_UNAVAILABLE"


class MessageNotFoundError(MailError):
    """引用的消息 id 在本后端存储中不存在。"""

    default_code = "MAIL_NOT_FOUND"


class AlreadyArchivedError(MailError):
    """
    消息已归档（区分条件，而非普通失败）。

    说明：
    - 无论哪个后端产生，都以同一类型传播：exec 后端通过 stderr 文本匹配得出，store 后端直接由记录状态得出。
    """

    default_code = "MAIL_ALREADY_ARCHIVED"


class ExecTimeoutError(MailError):
    """exec 后端：子进程超过 deadline 并已被终止。"""

    default_code = "MAIL_EXEC_TIMEOUT"


class ExecCommandError(MailError):
    """exec 后端：脚本以非 0、非 2 的退出码结束。"""

    default_code = "MAIL_EXEC_FAILED"


class ProtocolError(MailError):
    """exec 后端：stdout 无法按预期 JSON 形状解析。"""

    default_code = "MAIL_PROTOCOL"


class StoreError(AgentMailError):
    """记录存储（collaborator）读写失败。"""


class RecordNotFoundError(StoreError):
    """记录 id 不存在。"""
