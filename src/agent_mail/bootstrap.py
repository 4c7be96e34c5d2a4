"""
Bootstrap Layer（配置发现 / 环境变量覆盖 / provider 选择）。

设计目标：
- 保持核心 provider 无隐式 I/O：provider 本身不读环境变量、不发现配置文件；
- 提供可选 bootstrap 入口：CLI 与宿主应用复用同一套“默认配置 + overlays + env”解析。

环境变量：
- `AGENT_MAIL_PROVIDER`：`store` | `fake` | `fail` | `exec:<script>`（优先于配置文件）
- `AGENT_MAIL_AGENT`：默认身份（发件人 / 收件人），优先于 `mail.identity`
- `AGENT_MAIL_CONFIG`：额外的 overlay 路径（`,` 或 `;` 分隔；相对路径相对 workspace root）
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from agent_mail.config.defaults import load_default_config_dict
from agent_mail.config.loader import AgentMailConfig, _load_yaml_file, load_config_dicts
from agent_mail.core.fake import InMemoryMailProvider
from agent_mail.core.provider import MailProvider
from agent_mail.core.storemail import StoreMailProvider
from agent_mail.exec.provider import ExecMailProvider
from agent_mail.store.file import FileRecordStore
from agent_mail.store.protocol import RecordStore

logger = logging.getLogger(__name__)

ENV_PROVIDER = "AGENT_MAIL_PROVIDER"
ENV_AGENT = "AGENT_MAIL_AGENT"
ENV_CONFIG = "AGENT_MAIL_CONFIG"
DEFAULT_IDENTITY = "human"
_EXEC_PREFIX = "exec:"


def _get_env_nonempty(key: str, *, env: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """
    读取 env 并返回非空白字符串（否则视为未设置）。

    参数：
    - key：环境变量名
    """

    v = (os.environ if env is None else env).get(key)
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def _split_paths(raw: str) -> list[str]:
    """将逗号/分号分隔的路径串切分为片段列表（去掉空白与空项，保序）。"""

    parts: list[str] = []
    for chunk in raw.replace(";", ",").split(","):
        s = chunk.strip()
        if s:
            parts.append(s)
    return parts


def _resolve_path(workspace_root: Path, raw: str) -> Path:
    """相对路径相对 workspace_root 解析为绝对路径。"""

    p = Path(raw).expanduser()
    if not p.is_absolute():
        p = workspace_root / p
    return p.resolve()


def discover_overlay_paths(
    *,
    workspace_root: Path,
    cli_paths: Optional[List[str]] = None,
    env: Optional[Mapping[str, str]] = None,
) -> List[Path]:
    """
    汇总 overlay 路径：先 `AGENT_MAIL_CONFIG`，再 CLI `--config`（后者优先级更高）。

    返回：
    - 绝对路径列表（保序）
    """

    ws = Path(workspace_root).resolve()
    out: List[Path] = []
    raw = _get_env_nonempty(ENV_CONFIG, env=env)
    if raw:
        out.extend(_resolve_path(ws, p) for p in _split_paths(raw))
    for p in cli_paths or []:
        out.append(_resolve_path(ws, p))
    return out


def env_overlay(env: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """
    把环境变量投影为一个配置 overlay（最后合并，优先级最高）。

    异常：
    - ValueError：`AGENT_MAIL_PROVIDER` 取值未知
    """

    mail: Dict[str, Any] = {}
    provider = _get_env_nonempty(ENV_PROVIDER, env=env)
    if provider:
        if provider.startswith(_EXEC_PREFIX):
            mail["provider"] = "exec"
            mail["exec"] = {"script": provider[len(_EXEC_PREFIX) :].strip()}
        elif provider in {"store", "fake", "fail"}:
            mail["provider"] = provider
        else:
            raise ValueError(f"{ENV_PROVIDER} must be one of: store|fake|fail|exec:<script>; got: {provider}")
    identity = _get_env_nonempty(ENV_AGENT, env=env)
    if identity:
        mail["identity"] = identity
    return {"mail": mail} if mail else {}


def load_effective_config(
    *,
    overlay_paths: List[Path],
    env: Optional[Mapping[str, str]] = None,
) -> AgentMailConfig:
    """
    默认配置 + overlays + env 覆盖，返回校验后的配置。

    异常：
    - FileNotFoundError / ValueError / pydantic.ValidationError：由调用方决定如何展示
    """

    overlays: List[Dict[str, Any]] = [load_default_config_dict()]
    for p in overlay_paths:
        overlays.append(_load_yaml_file(p))
    overlays.append(env_overlay(env))
    logger.debug("effective config sources: overlays=%s env_provider=%s", [str(p) for p in overlay_paths], _get_env_nonempty(ENV_PROVIDER, env=env))
    return load_config_dicts(overlays)


def resolve_identity(config: AgentMailConfig) -> str:
    """返回默认身份（`mail.identity`，为空时为 `human`）。"""

    return str(config.mail.identity or "").strip() or DEFAULT_IDENTITY


def new_mail_provider(
    config: AgentMailConfig,
    *,
    workspace_root: Path,
    store: Optional[RecordStore] = None,
) -> MailProvider:
    """
    按配置创建 provider。

    参数：
    - config：已校验配置
    - workspace_root：相对路径锚点（store 文件路径）
    - store：显式注入的记录存储（仅 provider=store 时使用；为 None 时打开 `mail.store.path`）

    说明：
    - `fake` → 内存 provider；`fail` → 故障注入 provider；`exec` → 脚本委托；默认 `store`。
    """

    mail = config.mail
    if mail.provider == "exec":
        return ExecMailProvider(
            str(mail.exec.script),
            timeout_ms=mail.exec.timeout_ms,
            terminate_grace_ms=mail.exec.terminate_grace_ms,
        )
    if mail.provider == "fake":
        return InMemoryMailProvider()
    if mail.provider == "fail":
        return InMemoryMailProvider.broken()
    if store is None:
        store = FileRecordStore(_resolve_path(Path(workspace_root).resolve(), mail.store.path))
    return StoreMailProvider(store)
