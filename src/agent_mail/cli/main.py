"""
Agent Mail CLI（send/inbox/read/archive/check）。

约束：
- 使用 argparse（不引入第三方 CLI 依赖）
- stdout 输出机器可读 JSON；失败时也输出 JSON（`{"ok": false, "error": {...}}`）
- 例外：`check --inject` 输出 `<system-reminder>` 文本块，供 hook 注入到 agent prompt；该模式永远 exit 0

exit code：
- 0：成功
- 1：`check` 无未读消息
- 20：参数/配置无效
- 22：消息不存在
- 23：其它 provider 失败
- 24：provider 不可用
- 25：exec 脚本超时
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import yaml
from pydantic import ValidationError

from agent_mail import bootstrap
from agent_mail.core.contracts import Message
from agent_mail.core.errors import AlreadyArchivedError, MailError, MailIssue, StoreError
from agent_mail.core.provider import MailProvider
from agent_mail.core.utf8 import ensure_utf8_stdio

logger = logging.getLogger(__name__)

PROG = "agent-mail"

EXIT_OK = 0
EXIT_EMPTY = 1
EXIT_VALIDATION = 20
EXIT_NOT_FOUND = 22
EXIT_PROVIDER_FAILED = 23
EXIT_UNAVAILABLE = 24
EXIT_TIMEOUT = 25

_EXIT_BY_CODE = {
    "MAIL_NOT_FOUND": EXIT_NOT_FOUND,
    "MAIL_UNAVAILABLE": EXIT_UNAVAILABLE,
    "MAIL_EXEC_TIMEOUT": EXIT_TIMEOUT,
}


def _dump_json_to_stdout(obj: Dict[str, Any], *, pretty: bool) -> None:
    """
    将 dict 输出为 JSON 到 stdout（末尾包含换行）。

    参数：
    - obj：待输出对象（必须可 JSON dumps）
    - pretty：是否启用 pretty-print（indent=2）
    """

    if pretty:
        text = json.dumps(obj, ensure_ascii=False, indent=2)
    else:
        text = json.dumps(obj, ensure_ascii=False, separators=(",", ":"))
    print(text)


def _issue_to_jsonable(issue: MailIssue) -> Dict[str, Any]:
    """将 MailIssue 投影为可 JSON 序列化结构。"""

    details = {k: v if isinstance(v, (str, int, float, bool, list, type(None))) else str(v) for k, v in issue.details.items()}
    return {"code": issue.code, "message": issue.message, "details": details}


def _exit_code_for_error(exc: MailError) -> int:
    """按错误码映射 exit code（未知码视为 provider 失败 23）。"""

    return _EXIT_BY_CODE.get(exc.code, EXIT_PROVIDER_FAILED)


def _dump_error(issue: MailIssue, *, pretty: bool) -> None:
    """输出失败 JSON。"""

    _dump_json_to_stdout({"ok": False, "error": _issue_to_jsonable(issue)}, pretty=pretty)


def format_inject_output(messages: List[Message]) -> str:
    """
    把未读消息格式化为 `<system-reminder>` 块（hook 注入用）。

    返回：
    - 以换行结尾的完整文本块
    """

    lines = ["<system-reminder>", f"You have {len(messages)} unread message(s).", ""]
    for m in messages:
        lines.append(f"- {m.id} from {m.from_}: {m.body}")
    lines.append("")
    lines.append(f"Run '{PROG} read <id>' for full details, or '{PROG} inbox' to see all.")
    lines.append("</system-reminder>")
    return "\n".join(lines) + "\n"


def _build_parser() -> argparse.ArgumentParser:
    """构建 CLI argparse parser。"""

    parser = argparse.ArgumentParser(
        prog=PROG,
        description="Agent Mail CLI（send/inbox/read/archive/check）。",
    )
    root_sub = parser.add_subparsers(dest="command", required=True)

    def _add_common_flags(p: argparse.ArgumentParser) -> None:
        """为子命令添加公共 flags。"""

        p.add_argument("--workspace-root", default=".", help="Workspace root directory (default: .)")
        p.add_argument("--config", action="append", default=[], help="Overlay config YAML path (repeatable).")
        p.add_argument("--pretty", action="store_true", help="Pretty-print JSON output.")
        p.add_argument("--verbose", action="store_true", help="Enable debug logging on stderr.")

    send = root_sub.add_parser("send", help="Send a message")
    _add_common_flags(send)
    send.add_argument("to", help="Recipient identity.")
    send.add_argument("body", help="Message body.")
    send.add_argument("--from", dest="from_", default=None, help="Sender identity (default: configured identity).")

    inbox = root_sub.add_parser("inbox", help="List unread messages")
    _add_common_flags(inbox)
    inbox.add_argument("recipient", nargs="?", default=None, help="Recipient (default: configured identity).")

    read = root_sub.add_parser("read", help="Read a message and mark it as read")
    _add_common_flags(read)
    read.add_argument("id", help="Message id.")

    archive = root_sub.add_parser("archive", help="Archive a message without reading it")
    _add_common_flags(archive)
    archive.add_argument("id", help="Message id.")

    check = root_sub.add_parser("check", help="Check for unread messages (exit 1 when empty)")
    _add_common_flags(check)
    check.add_argument("recipient", nargs="?", default=None, help="Recipient (default: configured identity).")
    check.add_argument("--inject", action="store_true", help="Output a <system-reminder> block for hook injection.")

    return parser


def _resolve_workspace_root(raw: str) -> Tuple[Optional[Path], Optional[MailIssue]]:
    """
    解析 workspace_root 参数为绝对路径。

    返回：
    - (workspace_root, issue)：当解析失败时返回 (None, issue)；成功时 issue 为 None。
    """

    ws = Path(raw).expanduser().resolve()
    if not ws.is_dir():
        return None, MailIssue(
            code="CLI_WORKSPACE_ROOT_NOT_FOUND",
            message="Workspace root is not found or not a directory.",
            details={"workspace_root": str(ws)},
        )
    return ws, None


def _prepare_provider(args: argparse.Namespace) -> Tuple[Optional[MailProvider], str, Optional[Tuple[MailIssue, int]]]:
    """
    workspace + 配置 + env → provider 与默认身份。

    返回：
    - (provider, identity, failure)：失败时 provider 为 None，failure 为 (issue, exit_code)
    """

    ws, ws_issue = _resolve_workspace_root(str(args.workspace_root))
    if ws_issue is not None or ws is None:
        return None, "", (ws_issue or MailIssue("CLI_WORKSPACE_ROOT_INVALID", "Workspace root is invalid.", {}), EXIT_VALIDATION)

    try:
        overlay_paths = bootstrap.discover_overlay_paths(workspace_root=ws, cli_paths=list(args.config or []))
        config = bootstrap.load_effective_config(overlay_paths=overlay_paths)
    except ValidationError as exc:
        return None, "", (MailIssue("CLI_CONFIG_INVALID", "Config is invalid.", {"reason": str(exc)}), EXIT_VALIDATION)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        return None, "", (MailIssue("CLI_CONFIG_LOAD_FAILED", "Config load failed.", {"reason": str(exc)}), EXIT_VALIDATION)

    try:
        provider = bootstrap.new_mail_provider(config, workspace_root=ws)
    except StoreError as exc:
        return None, "", (MailIssue("MAIL_UNAVAILABLE", f"storemail open: {exc}", {}), EXIT_UNAVAILABLE)

    identity = bootstrap.resolve_identity(config)
    logger.debug("mail provider ready: provider=%s identity=%s", config.mail.provider, identity)
    return provider, identity, None


def _handle_send(args: argparse.Namespace, provider: MailProvider, identity: str) -> int:
    """`send <to> <body>`。"""

    sender = str(args.from_ or "").strip() or identity
    m = provider.send(sender, str(args.to), str(args.body))
    _dump_json_to_stdout({"ok": True, "message": m.to_wire()}, pretty=bool(args.pretty))
    return EXIT_OK


def _handle_inbox(args: argparse.Namespace, provider: MailProvider, identity: str) -> int:
    """`inbox [recipient]`。"""

    recipient = str(args.recipient or "").strip() or identity
    msgs = provider.inbox(recipient)
    _dump_json_to_stdout(
        {"ok": True, "recipient": recipient, "messages": [m.to_wire() for m in msgs]},
        pretty=bool(args.pretty),
    )
    return EXIT_OK


def _handle_read(args: argparse.Namespace, provider: MailProvider, identity: str) -> int:
    """`read <id>`。"""

    m = provider.read(str(args.id))
    _dump_json_to_stdout({"ok": True, "message": m.to_wire()}, pretty=bool(args.pretty))
    return EXIT_OK


def _handle_archive(args: argparse.Namespace, provider: MailProvider, identity: str) -> int:
    """`archive <id>`：已归档视为成功（`already_archived=true`）。"""

    already = False
    try:
        provider.archive(str(args.id))
    except AlreadyArchivedError:
        already = True
    _dump_json_to_stdout({"ok": True, "id": str(args.id), "already_archived": already}, pretty=bool(args.pretty))
    return EXIT_OK


def _handle_check(args: argparse.Namespace, provider: MailProvider, identity: str) -> int:
    """`check [recipient]`：有未读 exit 0，无未读 exit 1。"""

    recipient = str(args.recipient or "").strip() or identity
    msgs = provider.check(recipient)
    _dump_json_to_stdout(
        {"ok": True, "recipient": recipient, "count": len(msgs), "messages": [m.to_wire() for m in msgs]},
        pretty=bool(args.pretty),
    )
    return EXIT_OK if msgs else EXIT_EMPTY


def _handle_check_inject(args: argparse.Namespace) -> int:
    """
    `check --inject`：有未读时输出 `<system-reminder>` 块。

    说明：
    - 任何失败（配置、provider）只写 stderr，仍 exit 0，避免阻断宿主 hook。
    """

    provider, identity, failure = _prepare_provider(args)
    if failure is not None or provider is None:
        issue = failure[0] if failure else MailIssue("CLI_PROVIDER_INVALID", "Provider is not available.", {})
        print(f"{PROG} check: {issue.message}", file=sys.stderr)
        return EXIT_OK

    recipient = str(args.recipient or "").strip() or identity
    try:
        msgs = provider.check(recipient)
    except MailError as exc:
        print(f"{PROG} check: {exc}", file=sys.stderr)
        return EXIT_OK
    if msgs:
        sys.stdout.write(format_inject_output(msgs))
    return EXIT_OK


_HANDLERS = {
    "send": _handle_send,
    "inbox": _handle_inbox,
    "read": _handle_read,
    "archive": _handle_archive,
    "check": _handle_check,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    CLI 入口函数（用于 console_scripts 与测试）。

    参数：
    - argv：命令行参数列表（不含程序名）；为 None 时读取 sys.argv[1:]。

    返回：
    - int：exit code（不会直接 sys.exit，便于测试）。
    """

    ensure_utf8_stdio()

    parser = _build_parser()
    try:
        args = parser.parse_args(list(argv) if argv is not None else None)
    except SystemExit as exc:
        # argparse：`--help` → 0；参数错误 → 2
        code = getattr(exc, "code", 2)
        if code is None:
            return 2
        return int(code)

    if bool(getattr(args, "verbose", False)):
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr, format="%(levelname)s %(name)s: %(message)s")

    if args.command == "check" and bool(args.inject):
        return _handle_check_inject(args)

    pretty = bool(getattr(args, "pretty", False))
    provider, identity, failure = _prepare_provider(args)
    if failure is not None or provider is None:
        issue, exit_code = failure or (MailIssue("CLI_PROVIDER_INVALID", "Provider is not available.", {}), EXIT_VALIDATION)
        _dump_error(issue, pretty=pretty)
        return exit_code

    handler = _HANDLERS[args.command]
    try:
        return handler(args, provider, identity)
    except MailError as exc:
        _dump_error(exc.to_issue(), pretty=pretty)
        return _exit_code_for_error(exc)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
