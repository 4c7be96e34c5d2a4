"""
exec 脚本 wire 格式（JSON 编解码）。

格式：
- send stdin：`{"from": "...", "body": "..."}`（收件人走位置参数）
- 单条消息（send/read 的 stdout）：`{"id","from","to","body","created_at"}`，created_at 为 RFC3339 UTC
- inbox/check 的 stdout：消息 JSON 数组
"""

from __future__ import annotations

from typing import List

from pydantic import TypeAdapter, ValidationError

from agent_mail.core.contracts import Message, SendInput
from agent_mail.core.errors import ProtocolError

_MESSAGE_LIST = TypeAdapter(List[Message])


def marshal_send_input(from_: str, body: str) -> bytes:
    """编码 send 载荷为 UTF-8 JSON 字节。"""

    return SendInput(from_=from_, body=body).model_dump_json(by_alias=True).encode("utf-8")


def unmarshal_message(data: str) -> Message:
    """解码单条消息；形状不符时抛 `ProtocolError`（串联原始校验错误）。"""

    try:
        return Message.model_validate_json(data)
    except ValidationError as exc:
        raise ProtocolError(f"decoding message: {exc}", details={"stdout": data}) from exc


def unmarshal_messages(data: str) -> List[Message]:
    """解码消息数组（`null` 视为空数组）；形状不符时抛 `ProtocolError`。"""

    if data.strip() == "null":
        return []
    try:
        return _MESSAGE_LIST.validate_json(data)
    except ValidationError as exc:
        raise ProtocolError(f"decoding messages: {exc}", details={"stdout": data}) from exc
