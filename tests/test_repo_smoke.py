from __future__ import annotations

import re
import sys
from pathlib import Path


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[1]


def _pyproject_version() -> str:
    text = (_repo_root() / "pyproject.toml").read_text(encoding="utf-8")
    m = re.search(r'^version\s*=\s*"([^"]+)"', text, flags=re.MULTILINE)
    assert m is not None, "pyproject.toml has no [project].version"
    return m.group(1)


def test_package_is_importable_without_install() -> None:
    src = _repo_root() / "src"
    sys.path.insert(0, str(src))

    import agent_mail

    assert Path(agent_mail.__file__).resolve().is_relative_to(src.resolve())


def test_init_version_matches_pyproject() -> None:
    import agent_mail

    assert agent_mail.__version__ == _pyproject_version()


def test_public_exports_are_resolvable() -> None:
    import agent_mail

    for name in agent_mail.__all__:
        assert hasattr(agent_mail, name), name


def test_default_config_asset_is_packaged() -> None:
    assert (_repo_root() / "src" / "agent_mail" / "assets" / "default.yaml").exists()
