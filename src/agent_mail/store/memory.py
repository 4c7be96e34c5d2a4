"""内存记录存储（测试替身 / FileRecordStore 的内核）。"""

from __future__ import annotations

import threading
from typing import List, Optional

from agent_mail.core.errors import RecordNotFoundError
from agent_mail.core.utils import now_utc
from agent_mail.store.protocol import Record


class MemoryRecordStore:
    """
    基于列表的内存 RecordStore。

    说明：
    - id 形如 `gc-1`、`gc-2`（实例内递增）；
    - 所有方法持有同一把锁；返回的记录均为副本，调用方修改不会影响存储。
    """

    def __init__(self, *, seq: int = 0, records: Optional[List[Record]] = None) -> None:
        """
        创建存储。

        参数：
        - seq：已用的序号（从持久化状态恢复时传入）
        - records：已有记录（会被复制）
        """

        self._lock = threading.RLock()
        self._seq = int(seq)
        self._records: List[Record] = [r.model_copy() for r in (records or [])]

    def snapshot(self) -> tuple[int, List[Record]]:
        """返回 (seq, 全部记录副本)，供持久化使用。"""

        with self._lock:
            return self._seq, [r.model_copy() for r in self._records]

    def create(self, record: Record) -> Record:
        """写入新记录并分配 id/status/type/created_at。"""

        with self._lock:
            self._seq += 1
            stored = record.model_copy(
                update={
                    "id": f"gc-{self._seq}",
                    "status": "open",
                    "type": record.type or "task",
                    "created_at": now_utc(),
                }
            )
            self._records.append(stored)
            return stored.model_copy()

    def get(self, record_id: str) -> Record:
        """按 id 取回记录。"""

        with self._lock:
            return self._find(record_id).model_copy()

    def list(self) -> List[Record]:
        """按创建顺序返回全部记录。"""

        with self._lock:
            return [r.model_copy() for r in self._records]

    def close(self, record_id: str) -> None:
        """关闭记录（重复关闭为 no-op）。"""

        with self._lock:
            self._find(record_id).status = "closed"

    def _find(self, record_id: str) -> Record:
        """查找存储中的原始记录；调用方需持有锁。"""

        for r in self._records:
            if r.id == record_id:
                return r
        raise RecordNotFoundError(f"getting record {record_id!r}: record not found")
