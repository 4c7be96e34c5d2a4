"""
记录存储协议（RecordStore）与记录模型（Record）。

说明：
- 通用 key-record 存储：create/get/list/close；mail 只是它的一种记录类型（`type="message"`）。
- 实现 MUST 在 create 时分配唯一非空 id、默认 status=`open`、默认 type=`task`，并设置 created_at。
- close 把 status 置为 `closed`；对已关闭记录重复 close 为 no-op；id 不存在时抛 `RecordNotFoundError`。
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

RecordStatus = Literal["open", "in_progress", "closed"]


class Record(BaseModel):
    """一条记录（任务、消息等）。"""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    id: str = ""
    title: str = ""
    status: RecordStatus = "open"
    type: str = ""
    created_at: Optional[datetime] = None
    assignee: str = ""
    from_: str = Field(default="", alias="from")


@runtime_checkable
class RecordStore(Protocol):
    """记录存储协议（最小集合）。"""

    def create(self, record: Record) -> Record:
        """持久化新记录；由存储填写 id/status/created_at，返回完整记录。"""

        ...

    def get(self, record_id: str) -> Record:
        """按 id 取回记录；不存在时抛 `RecordNotFoundError`。"""

        ...

    def list(self) -> List[Record]:
        """返回全部记录（进程内实现按创建顺序）。"""

        ...

    def close(self, record_id: str) -> None:
        """把记录 status 置为 `closed`。"""

        ...
