"""记录存储（协议 + 内存实现 + JSON 文件实现）。"""

from __future__ import annotations

from agent_mail.store.file import FileRecordStore
from agent_mail.store.memory import MemoryRecordStore
from agent_mail.store.protocol import Record, RecordStore

__all__ = ["FileRecordStore", "MemoryRecordStore", "Record", "RecordStore"]
