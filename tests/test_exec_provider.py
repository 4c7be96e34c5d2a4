from __future__ import annotations

import json
import os
import threading
import time
from pathlib import Path

import pytest

from agent_mail import ExecMailProvider, MailProvider
from agent_mail.core.errors import (
    AlreadyArchivedError,
    ExecCommandError,
    ExecTimeoutError,
    ProtocolError,
    ProviderUnavailableError,
)

pytestmark = pytest.mark.skipif(os.name == "nt", reason="exec provider tests use POSIX shell scripts")


def _write_script(dir_path: Path, content: str) -> str:
    """在 dir_path 下写入可执行 sh 脚本并返回路径。"""

    path = dir_path / "mail-provider"
    path.write_text("#!/bin/sh\n" + content, encoding="utf-8")
    path.chmod(0o755)
    return str(path)


def _all_ops_script() -> str:
    """每个操作都返回固定、可预测结果的脚本。"""

    return """
op="$1"

case "$op" in
  ensure-running) ;;
  send)
    cat > /dev/null
    echo '{"id":"m-1","from":"human","to":"'"$2"'","body":"test","created_at":"2025-06-15T10:30:00Z"}'
    ;;
  inbox|check)
    echo '[{"id":"m-1","from":"human","to":"'"$2"'","body":"hello","created_at":"2025-06-15T10:30:00Z"}]'
    ;;
  read)
    echo '{"id":"'"$2"'","from":"human","to":"mayor","body":"read me","created_at":"2025-06-15T10:30:00Z"}'
    ;;
  archive)
    ;;
  *) exit 2 ;;
esac
"""


def test_exec_provider_satisfies_protocol(tmp_path: Path) -> None:
    assert isinstance(ExecMailProvider(_write_script(tmp_path, "exit 0\n")), MailProvider)


def test_constructor_validates_arguments() -> None:
    with pytest.raises(ValueError):
        ExecMailProvider("")
    with pytest.raises(ValueError):
        ExecMailProvider("/bin/true", timeout_ms=0)


def test_send_parses_stdout(tmp_path: Path) -> None:
    p = ExecMailProvider(_write_script(tmp_path, _all_ops_script()))

    m = p.send("human", "mayor", "hello")
    assert m.id == "m-1"
    assert m.to == "mayor"
    assert m.created_at.isoformat() == "2025-06-15T10:30:00+00:00"


def test_send_stdin_reaches_script(tmp_path: Path) -> None:
    out_file = tmp_path / "stdin.json"
    script = _write_script(
        tmp_path,
        f"""
op="$1"
case "$op" in
  ensure-running) exit 2 ;;
  send) cat > "{out_file}"
    echo '{{"id":"m-1","from":"x","to":"y","body":"z","created_at":"2025-06-15T10:30:00Z"}}'
    ;;
  *) exit 2 ;;
esac
""",
    )
    p = ExecMailProvider(script)

    p.send("alice", "bob", "test body")

    payload = json.loads(out_file.read_text(encoding="utf-8"))
    assert payload == {"from": "alice", "body": "test body"}


def test_inbox_read_archive_check(tmp_path: Path) -> None:
    p = ExecMailProvider(_write_script(tmp_path, _all_ops_script()))

    inbox = p.inbox("mayor")
    assert [m.id for m in inbox] == ["m-1"]
    assert inbox[0].to == "mayor"

    m = p.read("m-1")
    assert (m.id, m.body) == ("m-1", "read me")

    assert p.archive("m-1") is None
    assert len(p.check("mayor")) == 1


@pytest.mark.parametrize("op", ["inbox", "check"])
@pytest.mark.parametrize("stdout_line", ["", "echo null", "echo '[]'"])
def test_empty_listing_outputs_mean_no_messages(tmp_path: Path, op: str, stdout_line: str) -> None:
    script = _write_script(
        tmp_path,
        f"""
case "$1" in
  ensure-running) exit 2 ;;
  {op}) {stdout_line} ;;
  *) exit 2 ;;
esac
""",
    )
    p = ExecMailProvider(script)

    assert getattr(p, op)("mayor") == []


def test_ensure_running_called_once(tmp_path: Path) -> None:
    count_file = tmp_path / "count"
    count_file.write_text("0", encoding="utf-8")
    script = _write_script(
        tmp_path,
        f"""
case "$1" in
  ensure-running)
    count=$(cat "{count_file}")
    echo $((count + 1)) > "{count_file}"
    ;;
  inbox) echo '[]' ;;
  check) echo '[]' ;;
  *) exit 2 ;;
esac
""",
    )
    p = ExecMailProvider(script)

    p.inbox("a")
    p.check("b")
    p.inbox("c")

    assert count_file.read_text(encoding="utf-8").strip() == "1"


def test_ensure_running_once_under_concurrent_first_calls(tmp_path: Path) -> None:
    count_file = tmp_path / "count"
    count_file.write_text("0", encoding="utf-8")
    script = _write_script(
        tmp_path,
        f"""
case "$1" in
  ensure-running)
    sleep 0.2
    count=$(cat "{count_file}")
    echo $((count + 1)) > "{count_file}"
    ;;
  inbox) echo '[]' ;;
  *) exit 2 ;;
esac
""",
    )
    p = ExecMailProvider(script)
    errors: list[BaseException] = []

    def worker() -> None:
        try:
            p.inbox("mayor")
        except BaseException as exc:  # noqa: BLE001
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert count_file.read_text(encoding="utf-8").strip() == "1"


def test_ensure_running_failure_is_ignored(tmp_path: Path) -> None:
    script = _write_script(
        tmp_path,
        """
case "$1" in
  ensure-running) echo "server down" >&2; exit 1 ;;
  inbox) echo '[]' ;;
  *) exit 2 ;;
esac
""",
    )
    p = ExecMailProvider(script)

    assert p.inbox("mayor") == []


def test_ensure_running_exit2_stateless(tmp_path: Path) -> None:
    script = _write_script(
        tmp_path,
        """
case "$1" in
  ensure-running) exit 2 ;;
  inbox) echo '[]' ;;
  *) exit 2 ;;
esac
""",
    )
    p = ExecMailProvider(script)

    assert p.inbox("mayor") == []


def test_exit2_for_every_operation_is_a_noop(tmp_path: Path) -> None:
    p = ExecMailProvider(_write_script(tmp_path, "exit 2\n"))

    sent = p.send("alice", "bob", "hi")
    assert (sent.id, sent.from_, sent.to, sent.body) == ("", "alice", "bob", "hi")
    assert p.inbox("bob") == []
    assert p.check("bob") == []
    assert p.read("m-1").id == "m-1"
    assert p.archive("m-1") is None


def test_error_propagation_uses_stderr(tmp_path: Path) -> None:
    script = _write_script(
        tmp_path,
        """
case "$1" in
  ensure-running) exit 2 ;;
  *)
    echo "something went wrong" >&2
    exit 1
    ;;
esac
""",
    )
    p = ExecMailProvider(script)

    with pytest.raises(ExecCommandError) as excinfo:
        p.read("m-1")
    msg = str(excinfo.value)
    assert msg.startswith(f"exec mail provider {script} read m-1: ")
    assert msg.endswith("something went wrong")
    assert excinfo.value.details["exit_code"] == 1


def test_error_without_stderr_uses_exit_description(tmp_path: Path) -> None:
    script = _write_script(
        tmp_path,
        """
case "$1" in
  ensure-running) exit 2 ;;
  *) exit 3 ;;
esac
""",
    )
    p = ExecMailProvider(script)

    with pytest.raises(ExecCommandError, match="exit status 3"):
        p.inbox("mayor")


def test_archive_already_archived_maps_to_distinguished_error(tmp_path: Path) -> None:
    script = _write_script(
        tmp_path,
        """
case "$1" in
  ensure-running) exit 2 ;;
  archive) echo "already archived" >&2; exit 1 ;;
  *) exit 2 ;;
esac
""",
    )
    p = ExecMailProvider(script)

    with pytest.raises(AlreadyArchivedError, match="^exec mail archive: already archived$") as excinfo:
        p.archive("m-1")
    assert isinstance(excinfo.value.__cause__, ExecCommandError)


def test_already_archived_marker_only_applies_to_archive(tmp_path: Path) -> None:
    script = _write_script(
        tmp_path,
        """
case "$1" in
  ensure-running) exit 2 ;;
  *) echo "already archived" >&2; exit 1 ;;
esac
""",
    )
    p = ExecMailProvider(script)

    with pytest.raises(ExecCommandError) as excinfo:
        p.read("m-1")
    assert not isinstance(excinfo.value, AlreadyArchivedError)


def test_timeout_kills_script(tmp_path: Path) -> None:
    script = _write_script(
        tmp_path,
        """
case "$1" in
  ensure-running) exit 2 ;;
  *) sleep 60 ;;
esac
""",
    )
    p = ExecMailProvider(script, timeout_ms=500)

    start = time.monotonic()
    with pytest.raises(ExecTimeoutError):
        p.archive("m-1")
    assert time.monotonic() - start < 5.0


def test_missing_script_is_unavailable(tmp_path: Path) -> None:
    p = ExecMailProvider(str(tmp_path / "does-not-exist"))

    with pytest.raises(ProviderUnavailableError):
        p.inbox("mayor")


def test_non_executable_script_is_unavailable(tmp_path: Path) -> None:
    path = tmp_path / "mail-provider"
    path.write_text("#!/bin/sh\nexit 0\n", encoding="utf-8")
    path.chmod(0o644)
    p = ExecMailProvider(str(path))

    with pytest.raises(ProviderUnavailableError):
        p.inbox("mayor")


def test_malformed_stdout_is_protocol_error(tmp_path: Path) -> None:
    script = _write_script(
        tmp_path,
        """
case "$1" in
  ensure-running) exit 2 ;;
  read) echo 'not json' ;;
  inbox) echo '{"id":"m-1"}' ;;
  *) exit 2 ;;
esac
""",
    )
    p = ExecMailProvider(script)

    with pytest.raises(ProtocolError):
        p.read("m-1")
    with pytest.raises(ProtocolError):
        p.inbox("mayor")


def test_env_and_cwd_are_passed_to_script(tmp_path: Path) -> None:
    workdir = tmp_path / "work"
    workdir.mkdir()
    script = _write_script(
        tmp_path,
        """
case "$1" in
  ensure-running) exit 2 ;;
  read)
    echo '{"id":"'"$MAIL_TEST_TOKEN"'","from":"'"$(pwd)"'","to":"x","body":"y","created_at":"2025-06-15T10:30:00Z"}'
    ;;
  *) exit 2 ;;
esac
""",
    )
    p = ExecMailProvider(script, env={"MAIL_TEST_TOKEN": "tok-1"}, cwd=workdir)

    m = p.read("ignored")
    assert m.id == "tok-1"
    assert Path(m.from_).resolve() == workdir.resolve()


def test_output_survives_background_child_holding_stdout(tmp_path: Path) -> None:
    script = _write_script(
        tmp_path,
        """
case "$1" in
  ensure-running) sleep 30 & ;;
  inbox) echo '[{"id":"m-1","from":"a","to":"bob","body":"hi","created_at":"2025-06-15T10:30:00Z"}]'; sleep 30 & ;;
  read) echo '{"id":"m-1","from":"a","to":"bob","body":"hi","created_at":"2025-06-15T10:30:00Z"}'; sleep 30 & ;;
  *) exit 2 ;;
esac
""",
    )
    p = ExecMailProvider(script, terminate_grace_ms=200)

    start = time.monotonic()
    assert [m.id for m in p.inbox("bob")] == ["m-1"]
    assert p.read("m-1").body == "hi"
    assert time.monotonic() - start < 5.0


def test_unspawnable_script_path_is_unavailable() -> None:
    p = ExecMailProvider("/bin/sh\x00x")

    with pytest.raises(ProviderUnavailableError):
        p.inbox("bob")
