"""
MailProvider 一致性测试套件（测试支持模块）。

说明：
- 依赖 pytest（`pytest.raises`）；pytest 只在 test extra 中声明，使用前需安装 `agent-mail-sdk[test]`。
"""

from __future__ import annotations

from agent_mail.mailtest.conformance import (
    CONFORMANCE_CASES,
    ProviderFactory,
    run_conformance_case,
    run_provider_tests,
)

__all__ = ["CONFORMANCE_CASES", "ProviderFactory", "run_conformance_case", "run_provider_tests"]
