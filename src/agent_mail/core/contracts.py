"""
核心契约（Message 与 exec wire 载荷）。

说明：
- `Message` 是所有后端之间交换的值类型；创建后不可变（`frozen=True`）。
- wire key 固定为 `id/from/to/body/created_at`，必须与独立编写的 exec 脚本字节级兼容。
- Python 侧 `from` 是关键字，因此属性名为 `from_`，序列化时通过 alias 输出 `from`。
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from agent_mail.core.utils import to_rfc3339


class Message(BaseModel):
    """
    一条 mail 消息（agent 之间或 agent 与人之间）。

    字段：
    - id：后端分配的唯一标识（唯一性范围 = 单个后端实例）
    - from_/to：不受约束的身份字符串（wire key 为 `from`/`to`）
    - body：不受约束的文本
    - created_at：后端在 send 时分配的 UTC 时间戳
    """

    # exec 脚本由第三方编写：多出的字段忽略，缺少的字段视为协议违规。
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    id: str
    from_: str = Field(alias="from")
    to: str
    body: str
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _normalize_utc(cls, value: datetime) -> datetime:
        """统一为 timezone-aware UTC（naive 值按 UTC 解释）。"""

        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @field_serializer("created_at")
    def _serialize_created_at(self, value: datetime) -> str:
        """序列化为 RFC3339 UTC（`Z` 结尾）。"""

        return to_rfc3339(value)

    def to_wire(self) -> Dict[str, Any]:
        """投影为 wire dict（key 使用 alias）。"""

        return self.model_dump(by_alias=True)

    def to_json(self) -> str:
        """序列化为 JSON 字符串。"""

        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, raw_json: str) -> "Message":
        """从 JSON 字符串反序列化为 `Message`。"""

        return cls.model_validate_json(raw_json)


class SendInput(BaseModel):
    """exec `send` 操作写入脚本 stdin 的载荷（收件人走位置参数，不在此处）。"""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    from_: str = Field(alias="from")
    body: str
