"""
exec 委托后端（ExecMailProvider）。

协议（与 Git credential helper 同一模式）：
- 每个操作 fork/exec 一次脚本：`<script> <op> [<target>]`，op ∈ {ensure-running, send, inbox, read, archive, check}；
- target：send/inbox/check 为收件人，read/archive 为消息 id；
- 仅 send 使用 stdin（`{"from","body"}` JSON）；结果走 stdout（JSON），失败走 stderr + 非 0 退出码。

退出码约定（唯一的版本演进机制）：
- 0：成功，按操作预期形状解析 stdout；
- 2：脚本不认识该操作 → 视为成功的 no-op，从不作为错误抛出；
- 其它非 0：失败；错误消息优先取 trim 后的 stderr，为空时取原始执行错误。

生命周期：
- 同一实例的第一次调用（任意操作）之前，恰好执行一次 `ensure-running`（无 stdin），其结果一律忽略。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Mapping, Optional

from agent_mail.core.contracts import Message
from agent_mail.core.errors import (
    AlreadyArchivedError,
    ExecCommandError,
    ExecTimeoutError,
    MailError,
    ProviderUnavailableError,
)
from agent_mail.core.executor import Executor
from agent_mail.core.once import Once
from agent_mail.core.utils import now_utc
from agent_mail.exec.wire import marshal_send_input, unmarshal_message, unmarshal_messages

logger = logging.getLogger(__name__)

EXIT_UNSUPPORTED = 2
DEFAULT_TIMEOUT_MS = 30_000
DEFAULT_TERMINATE_GRACE_MS = 2_000
ALREADY_ARCHIVED_MARKER = "already archived"


class ExecMailProvider:
    """
    通过用户脚本实现 `MailProvider`。

    参数：
    - script：脚本路径（绝对路径或 PATH 中可查找的名字）
    - timeout_ms：单次调用超时（毫秒）
    - terminate_grace_ms：超时后 SIGTERM→SIGKILL 的宽限期（毫秒）
    - env：追加给脚本的环境变量
    - cwd：脚本工作目录（None 表示继承当前进程）

    说明：
    - 并发调用各自启动独立子进程（不做池化/复用）；实例间唯一共享的可变状态是 `ensure-running` 的 Once 守卫。
    """

    def __init__(
        self,
        script: str,
        *,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        terminate_grace_ms: int = DEFAULT_TERMINATE_GRACE_MS,
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[Path] = None,
    ) -> None:
        """创建 provider（不会立即启动脚本）。"""

        if not str(script or "").strip():
            raise ValueError("script must not be empty")
        if timeout_ms < 1:
            raise ValueError("timeout_ms must be >= 1")
        self._script = str(script)
        self._timeout_ms = int(timeout_ms)
        self._env = dict(env) if env else None
        self._cwd = cwd
        self._executor = Executor(terminate_grace_ms=terminate_grace_ms)
        self._ready = Once()

    @property
    def script(self) -> str:
        """脚本路径。"""

        return self._script

    @property
    def timeout_ms(self) -> int:
        """单次调用超时（毫秒）。"""

        return self._timeout_ms

    def send(self, from_: str, to: str, body: str) -> Message:
        """委托：`script send <to>`，stdin 为 `{"from","body"}`。"""

        self._ensure_running()
        out = self._run(marshal_send_input(from_, body), "send", to)
        if out is None:
            return Message(id="", from_=from_, to=to, body=body, created_at=now_utc())
        return unmarshal_message(out)

    def inbox(self, recipient: str) -> List[Message]:
        """委托：`script inbox <recipient>`；空 stdout 表示没有消息。"""

        self._ensure_running()
        out = self._run(None, "inbox", recipient)
        if not out:
            return []
        return unmarshal_messages(out)

    def read(self, message_id: str) -> Message:
        """委托：`script read <id>`。"""

        self._ensure_running()
        out = self._run(None, "read", message_id)
        if out is None:
            return Message(id=message_id, from_="", to="", body="", created_at=now_utc())
        return unmarshal_message(out)

    def archive(self, message_id: str) -> None:
        """
        委托：`script archive <id>`。

        脚本在 stderr 写出 `already archived` 并以非 0 退出时，抛 `AlreadyArchivedError`。
        """

        self._ensure_running()
        try:
            self._run(None, "archive", message_id)
        except ExecCommandError as exc:
            if ALREADY_ARCHIVED_MARKER in str(exc.details.get("stderr") or ""):
                raise AlreadyArchivedError(
                    f"exec mail archive: {ALREADY_ARCHIVED_MARKER}",
                    details={"id": message_id},
                ) from exc
            raise

    def check(self, recipient: str) -> List[Message]:
        """委托：`script check <recipient>`；空 stdout 表示没有消息。"""

        self._ensure_running()
        out = self._run(None, "check", recipient)
        if not out:
            return []
        return unmarshal_messages(out)

    def _ensure_running(self) -> None:
        """每个实例生命周期内恰好调用一次 `ensure-running`；并发首调用方等待同一次结果。"""

        self._ready.do(self._call_ensure_running)

    def _call_ensure_running(self) -> None:
        """执行 `ensure-running` 并忽略其结果。"""

        try:
            self._run(None, "ensure-running")
        except MailError as exc:
            logger.debug("ensure-running outcome ignored script=%s: %s", self._script, exc)

    def _run(self, stdin_data: Optional[bytes], *args: str) -> Optional[str]:
        """
        执行脚本，返回去掉末尾换行的 stdout。

        返回：
        - str：退出码 0
        - None：退出码 2（脚本不支持该操作，视为成功 no-op）

        异常：
        - ExecTimeoutError：超时（子进程已被终止）
        - ProviderUnavailableError：脚本无法启动
        - ExecCommandError：其它非 0 退出码
        """

        label = f"exec mail provider {self._script} {' '.join(args)}"
        result = self._executor.run_command(
            [self._script, *args],
            stdin_data=stdin_data,
            cwd=self._cwd,
            env=self._env,
            timeout_ms=self._timeout_ms,
        )
        details = {"script": self._script, "args": list(args)}

        if result.timeout:
            raise ExecTimeoutError(f"{label}: {result.error}", details={**details, "timeout_ms": self._timeout_ms})
        if result.exit_code is None:
            raise ProviderUnavailableError(f"{label}: {result.error or result.stderr}", details=details)
        if result.exit_code == EXIT_UNSUPPORTED:
            return None
        if result.exit_code != 0:
            err_msg = result.stderr.strip() or str(result.error or "")
            raise ExecCommandError(
                f"{label}: {err_msg}",
                details={**details, "exit_code": result.exit_code, "stderr": result.stderr.strip()},
            )
        return result.stdout.rstrip("\n")
