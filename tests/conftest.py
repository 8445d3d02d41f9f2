"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

# 假 agent 脚本
FAKE_AGENT = Path(__file__).parent / "fixtures" / "fake_agent.py"


@pytest.fixture
def project_root() -> Path:
    """项目根目录。"""
    return PROJECT_ROOT


@pytest.fixture
def fake_agent() -> Path:
    """假 agent REPL 脚本路径。"""
    return FAKE_AGENT


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """临时工作目录。"""
    path = tmp_path / "workspace"
    path.mkdir()
    return path


@pytest.fixture
def make_session(fake_agent: Path, workspace: Path):
    """创建运行假 agent 的 AgentSession（未启动）。"""
    from cli_agent_bridge.session import AgentSession

    def _make(*extra_args: str, api_key: str = "test-key", **kwargs) -> AgentSession:
        return AgentSession(
            sys.executable,
            workspace,
            api_key,
            args=["-u", str(fake_agent), *extra_args],
            term_timeout=0.5,
            kill_timeout=0.3,
            **kwargs,
        )

    return _make
