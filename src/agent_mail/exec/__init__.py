"""exec 委托后端（脚本协议 + wire 编解码）。"""

from __future__ import annotations

from agent_mail.exec.provider import EXIT_UNSUPPORTED, ExecMailProvider

__all__ = ["EXIT_UNSUPPORTED", "ExecMailProvider"]
