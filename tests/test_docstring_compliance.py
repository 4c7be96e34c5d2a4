from __future__ import annotations

import ast
from pathlib import Path
from typing import Iterator, Tuple

_SKIP_DIRS = {"__pycache__", ".pytest_cache", ".mypy_cache", "build", "dist"}


def _src_root() -> Path:
    return Path(__file__).resolve().parents[1] / "src"


def _iter_source_files(root: Path) -> Iterator[Path]:
    for path in sorted(root.rglob("*.py")):
        if _SKIP_DIRS.intersection(path.relative_to(root).parts):
            continue
        yield path


def _iter_undocumented(tree: ast.AST, prefix: str = "") -> Iterator[Tuple[int, str]]:
    """按深度优先遍历 class/def（含嵌套），产出缺少 docstring 的 (lineno, qualname)。"""

    for node in ast.iter_child_nodes(tree):
        if isinstance(node, (ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef)):
            qualname = f"{prefix}{node.name}"
            if ast.get_docstring(node) is None:
                yield node.lineno, qualname
            yield from _iter_undocumented(node, prefix=f"{qualname}.")
        else:
            yield from _iter_undocumented(node, prefix=prefix)


def test_every_class_and_function_under_src_has_docstring() -> None:
    """
    Docstring 合规护栏。

    规则：
    - 扫描 `src/` 下全部 `.py` 文件；
    - 每个 `class/def/async def`（包含嵌套定义）都要求存在 docstring。
    """

    root = _src_root()
    missing: list[str] = []
    for path in _iter_source_files(root):
        tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
        rel = path.relative_to(root.parent)
        missing.extend(f"- {rel}:{lineno} {qualname}" for lineno, qualname in _iter_undocumented(tree))

    assert not missing, "missing docstrings:\n" + "\n".join(missing)
