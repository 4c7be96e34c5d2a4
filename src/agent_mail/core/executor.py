"""
Executor（单次子进程执行引擎）。

本模块为 exec 委托后端提供最小闭环：
- `Executor.run_command(...)`：执行 argv 命令，可选写入 stdin
- 标准化 `CommandResult`：stdout/stderr/exit_code/timeout/error_kind 等

说明：
- 每次调用都是一个全新的进程（不做进程池/复用）；
- 超时后终止策略为 SIGTERM →（宽限期）→ SIGKILL，POSIX 下作用于整个进程组；
- 子进程可能把 stdout/stderr 继承给它拉起的常驻进程（例如 `ensure-running` 启动的伴生服务）：
  主进程退出后，读取线程最多再等待一个宽限期，之后不再等待管道 EOF。
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
import time
from pathlib import Path
from typing import IO, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class CommandResult(BaseModel):
    """
    命令执行结果（结构化）。

    字段说明：
    - ok：是否执行成功（exit_code==0 且未超时）
    - exit_code：进程退出码；超时或未能启动时为 None
    - stdout/stderr：捕获到的完整输出（UTF-8，非法字节替换）
    - duration_ms：耗时（毫秒）
    - timeout：是否因超时被终止
    - error_kind：错误分类（not_found/permission/spawn/timeout/exit_code/validation）
    - error：原始执行错误描述（例如启动失败的 OSError 文本、`exit status 1`）
    """

    model_config = ConfigDict(extra="forbid")

    ok: bool
    exit_code: Optional[int] = None
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = Field(default=0, ge=0)
    timeout: bool = False
    error_kind: Optional[str] = None
    error: Optional[str] = None


def _decode_bytes(data: bytes) -> str:
    """将字节解码为 UTF-8 文本；非法字节替换为 U+FFFD。"""

    return data.decode("utf-8", errors="replace")


def _drain_stream(stream: Optional[IO[bytes]], chunks: List[bytes]) -> None:
    """
    持续读取子进程输出直到 EOF（后台线程）；结束时关闭自己的管道。

    说明：
    - 使用 `read1`：有数据即返回并记录，不等凑满缓冲区；管道被后代进程持有、迟迟不到 EOF 时，已写出的输出也不会丢失。
    """

    if stream is None:
        return
    try:
        while True:
            chunk = stream.read1(4096)  # type: ignore[attr-defined]
            if not chunk:
                return
            chunks.append(chunk)
    except (OSError, ValueError):
        return
    finally:
        try:
            stream.close()
        except OSError:
            pass


def _feed_stdin(stream: Optional[IO[bytes]], data: bytes) -> None:
    """把 data 写入子进程 stdin 并关闭（后台线程；脚本不读 stdin 时忽略 BrokenPipe）。"""

    if stream is None:
        return
    try:
        if data:
            stream.write(data)
    except (BrokenPipeError, OSError, ValueError):
        pass
    finally:
        try:
            stream.close()
        except (BrokenPipeError, OSError):
            pass


class Executor:
    """
    执行器。

    参数：
    - terminate_grace_ms：超时后 SIGTERM→SIGKILL 的宽限时间（毫秒）；同时也是进程退出后等待输出管道关闭的上限
    """

    def __init__(self, *, terminate_grace_ms: int = 2_000) -> None:
        """
        创建执行器并配置超时终止策略。

        约束：
        - `terminate_grace_ms` 必须 >= 0；
        - 本类不做命令白名单判断，也不解释 stdout 内容（该职责属于调用方协议层）。
        """

        if terminate_grace_ms < 0:
            raise ValueError("terminate_grace_ms must be >= 0")
        self._terminate_grace_ms = terminate_grace_ms

    def run_command(
        self,
        argv: list[str],
        *,
        stdin_data: Optional[bytes] = None,
        cwd: Optional[Path] = None,
        env: Optional[Mapping[str, str]] = None,
        timeout_ms: int = 30_000,
    ) -> CommandResult:
        """
        执行 argv 命令并捕获结果。

        参数：
        - argv：命令与参数（argv 形式，至少 1 项）
        - stdin_data：写入 stdin 的字节；为 None 时 stdin 连接到 /dev/null
        - cwd：工作目录（None 表示继承当前进程）
        - env：追加/覆盖的环境变量（会覆盖 os.environ 同名项）
        - timeout_ms：超时毫秒数；超时后 SIGTERM→SIGKILL

        返回：
        - `CommandResult`
        """

        start = time.monotonic()
        if not argv:
            return CommandResult(ok=False, stderr="argv must not be empty", error_kind="validation")
        if timeout_ms < 1:
            return CommandResult(ok=False, stderr="timeout_ms must be >= 1", error_kind="validation")

        merged_env = dict(os.environ)
        if env:
            merged_env.update({str(k): str(v) for k, v in env.items()})

        popen_kwargs: dict = {
            "env": merged_env,
            "stdin": subprocess.PIPE if stdin_data is not None else subprocess.DEVNULL,
            "stdout": subprocess.PIPE,
            "stderr": subprocess.PIPE,
        }
        if cwd is not None:
            popen_kwargs["cwd"] = str(cwd)

        # 让超时 kill 更可靠：子进程成为新的进程组 leader。
        if os.name != "nt":
            popen_kwargs["start_new_session"] = True
        else:
            popen_kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP  # type: ignore[attr-defined]

        logger.debug("exec argv=%s stdin_bytes=%s timeout_ms=%s", argv, None if stdin_data is None else len(stdin_data), timeout_ms)
        try:
            proc = subprocess.Popen(argv, **popen_kwargs)  # noqa: S603
        except FileNotFoundError as e:
            return CommandResult(ok=False, stderr=str(e), error=str(e), duration_ms=self._elapsed_ms(start), error_kind="not_found")
        except PermissionError as e:
            return CommandResult(ok=False, stderr=str(e), error=str(e), duration_ms=self._elapsed_ms(start), error_kind="permission")
        except (OSError, ValueError) as e:
            return CommandResult(ok=False, stderr=str(e), error=str(e), duration_ms=self._elapsed_ms(start), error_kind="spawn")

        out_chunks: List[bytes] = []
        err_chunks: List[bytes] = []
        threads = [
            threading.Thread(target=_drain_stream, args=(proc.stdout, out_chunks), daemon=True),
            threading.Thread(target=_drain_stream, args=(proc.stderr, err_chunks), daemon=True),
        ]
        if stdin_data is not None:
            threads.append(threading.Thread(target=_feed_stdin, args=(proc.stdin, stdin_data), daemon=True))
        for t in threads:
            t.start()

        timeout = False
        try:
            proc.wait(timeout=timeout_ms / 1000.0)
        except subprocess.TimeoutExpired:
            timeout = True
            self._terminate_process(proc)
        finally:
            # 仍被后代进程持有的管道不再等待：读取线程为 daemon，会在管道关闭时自行退出。
            join_deadline = time.monotonic() + max(self._terminate_grace_ms, 100) / 1000.0
            for t in threads:
                t.join(timeout=max(0.0, join_deadline - time.monotonic()))

        duration_ms = self._elapsed_ms(start)
        stdout_text = _decode_bytes(b"".join(out_chunks))
        stderr_text = _decode_bytes(b"".join(err_chunks))

        if timeout:
            logger.debug("exec timeout argv=%s duration_ms=%s", argv, duration_ms)
            return CommandResult(
                ok=False,
                exit_code=None,
                stdout=stdout_text,
                stderr=stderr_text,
                duration_ms=duration_ms,
                timeout=True,
                error_kind="timeout",
                error=f"timed out after {timeout_ms}ms",
            )

        exit_code = proc.returncode
        ok = exit_code == 0
        logger.debug("exec done argv=%s exit_code=%s duration_ms=%s", argv, exit_code, duration_ms)
        return CommandResult(
            ok=ok,
            exit_code=exit_code,
            stdout=stdout_text,
            stderr=stderr_text,
            duration_ms=duration_ms,
            timeout=False,
            error_kind=None if ok else "exit_code",
            error=None if ok else self._describe_exit(exit_code),
        )

    @staticmethod
    def _elapsed_ms(start: float) -> int:
        """返回自 start（monotonic）以来的毫秒数。"""

        return int((time.monotonic() - start) * 1000)

    @staticmethod
    def _describe_exit(exit_code: Optional[int]) -> str:
        """把退出码描述为原始执行错误文本（负数表示被信号终止）。"""

        if exit_code is not None and exit_code < 0:
            try:
                name = signal.Signals(-exit_code).name
            except ValueError:
                name = str(-exit_code)
            return f"signal: {name}"
        return f"exit status {exit_code}"

    def _terminate_process(self, proc: subprocess.Popen[bytes]) -> None:
        """
        超时终止子进程：SIGTERM → (grace) → SIGKILL。

        注意：
        - 在 POSIX 下，优先终止进程组（start_new_session=True）。
        - 在 Windows 下，使用 terminate/kill。
        """

        if os.name == "nt":
            try:
                proc.terminate()
            except OSError:
                pass
            try:
                proc.wait(timeout=self._terminate_grace_ms / 1000.0)
                return
            except subprocess.TimeoutExpired:
                pass
            try:
                proc.kill()
            except OSError:
                pass
            proc.wait()
            return

        # POSIX：尽量杀进程组
        try:
            os.killpg(proc.pid, signal.SIGTERM)
        except OSError:
            try:
                proc.terminate()
            except OSError:
                pass

        try:
            proc.wait(timeout=self._terminate_grace_ms / 1000.0)
            return
        except subprocess.TimeoutExpired:
            pass

        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except OSError:
            try:
                proc.kill()
            except OSError:
                pass
        proc.wait()
