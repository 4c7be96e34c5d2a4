"""
CLI 入口的 stdio 编码兜底。

说明：
- `C` locale 下 stdout/stderr 可能是 ASCII；消息 body 常含非 ASCII 文本（例如中文），直接输出会触发 `UnicodeEncodeError`；
- 入口应在 argparse 与任何输出之前调用。
"""

from __future__ import annotations

import sys


def ensure_utf8_stdio() -> None:
    """
    best-effort 将 stdout/stderr 切到 UTF-8（`errors="replace"`）。

    说明：
    - 被替换成不支持 `reconfigure()` 的流（例如测试捕获对象）时跳过，不阻断启动。
    """

    for stream in (sys.stdout, sys.stderr):
        reconfigure = getattr(stream, "reconfigure", None)
        if not callable(reconfigure):
            continue
        try:
            reconfigure(encoding="utf-8", errors="replace")
        except (OSError, ValueError):
            continue
