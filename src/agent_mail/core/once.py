"""
Once：至多执行一次的线程安全守卫。

说明：
- 第一个调用方在锁内执行 action；并发调用方阻塞在同一把锁上，直到 action 结束；
- action 结束后（无论成功或抛错）都视为“已执行”，之后的调用直接返回；
- 不使用计数器或基于时间的判断。
"""

from __future__ import annotations

import threading
from typing import Callable


class Once:
    """线程安全的一次性执行器（语义对齐常见的 `sync.Once`）。"""

    def __init__(self) -> None:
        """创建未触发的守卫。"""

        self._lock = threading.Lock()
        self._done = False

    @property
    def done(self) -> bool:
        """action 是否已经执行过。"""

        return self._done

    def do(self, action: Callable[[], object]) -> None:
        """
        若尚未执行则执行 action（其异常会向第一个调用方传播）。

        参数：
        - action：无参可调用对象；返回值被忽略
        """

        if self._done:
            return
        with self._lock:
            if self._done:
                return
            try:
                action()
            finally:
                self._done = True
