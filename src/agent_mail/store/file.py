"""
文件记录存储（JSON）。

实现约定：
- 打开时一次性加载到内存（`MemoryRecordStore` 承担全部记录逻辑）；
- 每次写操作（create/close）后整体落盘：先写临时文件并 fsync，再原子 rename 覆盖；
- 单进程内线程安全；跨进程并发写同一文件不做保证。
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, List

from agent_mail.core.errors import StoreError
from agent_mail.store.memory import MemoryRecordStore
from agent_mail.store.protocol import Record

logger = logging.getLogger(__name__)


class FileRecordStore:
    """
    JSON 文件 RecordStore。

    参数：
    - path：存储文件路径（例如 `<workspace>/.agent_mail/records.json`）；父目录不存在时自动创建
    """

    def __init__(self, path: Path) -> None:
        """打开或创建存储文件；文件损坏时抛 `StoreError`。"""

        self.path = Path(path)
        self._lock = threading.Lock()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreError(f"opening file store: {exc}") from exc
        self._mem = self._load()

    def _load(self) -> MemoryRecordStore:
        """读取文件内容；不存在时返回空存储。"""

        if not self.path.exists():
            return MemoryRecordStore()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            seq = int(data.get("seq", 0))
            records = [Record.model_validate(obj) for obj in data.get("records") or []]
        except (OSError, ValueError, TypeError, AttributeError) as exc:
            raise StoreError(f"opening file store: {exc}") from exc
        logger.debug("file store loaded path=%s records=%s", self.path, len(records))
        return MemoryRecordStore(seq=seq, records=records)

    def create(self, record: Record) -> Record:
        """委托内存存储创建并落盘。"""

        with self._lock:
            created = self._mem.create(record)
            self._save()
            return created

    def get(self, record_id: str) -> Record:
        """按 id 取回记录。"""

        return self._mem.get(record_id)

    def list(self) -> List[Record]:
        """按创建顺序返回全部记录。"""

        return self._mem.list()

    def close(self, record_id: str) -> None:
        """关闭记录并落盘。"""

        with self._lock:
            self._mem.close(record_id)
            self._save()

    def _save(self) -> None:
        """整体写盘（临时文件 + rename）；调用方需持有锁。"""

        seq, records = self._mem.snapshot()
        payload: Dict[str, Any] = {
            "seq": seq,
            "records": [r.model_dump(mode="json", by_alias=True) for r in records],
        }
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            with tmp.open("w", encoding="utf-8") as fh:
                json.dump(payload, fh, ensure_ascii=False, indent=2)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, self.path)
        except OSError as exc:
            raise StoreError(f"saving file store: {exc}") from exc
