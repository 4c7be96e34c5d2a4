"""
配置加载器（YAML）。

设计目标：
- 支持加载多个 YAML，并按顺序做深度合并（后者覆盖前者）。
- 使用 pydantic 做 schema 校验；默认拒绝未知字段（避免拼写错误与误配置被静默吞掉）。
"""

from __future__ import annotations

from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Literal, Mapping, MutableMapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator


def _deep_merge(base: MutableMapping[str, Any], overlay: Mapping[str, Any]) -> MutableMapping[str, Any]:
    """
    深度合并两个 dict（overlay 覆盖 base）。

    合并规则：
    - dict + dict：递归合并
    - 其它类型：overlay 直接覆盖
    - list：整体覆盖（不做去重/拼接）
    """

    for key, overlay_value in overlay.items():
        if key in base and isinstance(base[key], dict) and isinstance(overlay_value, Mapping):
            _deep_merge(base[key], overlay_value)  # type: ignore[arg-type]
            continue
        base[key] = deepcopy(overlay_value)
    return base


class MailExecConfig(BaseModel):
    """exec 后端配置。"""

    model_config = ConfigDict(extra="forbid")

    script: Optional[str] = None
    timeout_ms: int = Field(default=30_000, ge=1)
    terminate_grace_ms: int = Field(default=2_000, ge=0)


class MailStoreConfig(BaseModel):
    """记录存储后端配置。"""

    model_config = ConfigDict(extra="forbid")

    path: str = Field(default=".agent_mail/records.json", min_length=1)


class MailConfig(BaseModel):
    """
    mail 配置。

    说明：
    - `provider` 选择后端：`store`（默认，记录存储）/ `fake`（内存）/ `fail`（故障注入）/ `exec`（脚本委托）；
    - `provider=exec` 时 `exec.script` 必填。
    """

    model_config = ConfigDict(extra="forbid")

    provider: Literal["store", "fake", "fail", "exec"] = Field(default="store")
    identity: Optional[str] = None
    exec: MailExecConfig = Field(default_factory=MailExecConfig)
    store: MailStoreConfig = Field(default_factory=MailStoreConfig)

    @model_validator(mode="after")
    def _require_exec_script(self) -> "MailConfig":
        """provider=exec 时要求 script 非空。"""

        if self.provider == "exec" and not str(self.exec.script or "").strip():
            raise ValueError("mail.exec.script is required when mail.provider=exec")
        return self


class AgentMailConfig(BaseModel):
    """配置根对象。"""

    model_config = ConfigDict(extra="forbid")

    config_version: int = Field(default=1, ge=1)
    mail: MailConfig = Field(default_factory=MailConfig)


def _load_yaml_file(path: Path) -> Dict[str, Any]:
    """读取 YAML 文件为 dict；空文件返回空 dict。"""

    if not path.exists():
        raise FileNotFoundError(f"config file not found: {path}")
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"config root must be a mapping(dict): {path}")
    return data


def load_config_dicts(config_dicts: list[Dict[str, Any]]) -> AgentMailConfig:
    """
    加载并合并多个 dict 配置，返回校验后的 `AgentMailConfig`。

    参数：
    - config_dicts：按顺序做深度合并（后者覆盖前者）
    """

    merged: Dict[str, Any] = {}
    for overlay in config_dicts:
        if not overlay:
            continue
        _deep_merge(merged, overlay)
    return AgentMailConfig.model_validate(merged)


def load_config(config_paths: list[Path]) -> AgentMailConfig:
    """
    加载并合并多个配置文件，返回校验后的 `AgentMailConfig`。

    参数：
    - config_paths：YAML 路径列表；按顺序合并（后者覆盖前者）
    """

    overlays: list[Dict[str, Any]] = []
    for path in config_paths:
        overlays.append(_load_yaml_file(Path(path)))
    return load_config_dicts(overlays)
