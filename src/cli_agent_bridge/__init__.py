"""CLI Agent Bridge - 交互式 CLI agent 的会话层与 MCP 服务器。

环境变量:
    CAB_AGENT_PATH: agent 可执行文件路径
    CAB_WORKSPACE: agent 工作目录 (默认当前目录)
    CAB_API_KEY: 注入给 agent 的凭据

用法:
    uvx cli-agent-bridge
"""

__version__ = "0.1.0"

from .errors import (
    AgentConfigError,
    AgentProcessError,
    AgentSessionError,
    NotRunningError,
    StreamEndedError,
    TurnInFlightError,
    TurnInterruptedError,
    WriteFailureError,
)
from .session import AgentSession, SessionManager
from .shared.parsers import ToolCall, TurnMessage, TurnResult

__all__ = [
    "__version__",
    "main",
    "AgentSession",
    "SessionManager",
    "TurnResult",
    "TurnMessage",
    "ToolCall",
    "AgentSessionError",
    "NotRunningError",
    "TurnInFlightError",
    "WriteFailureError",
    "StreamEndedError",
    "TurnInterruptedError",
    "AgentProcessError",
    "AgentConfigError",
]


def main() -> None:
    """启动 MCP 服务器（延迟导入，避免库使用者加载 mcp）。"""
    from .app import main as _main

    _main()
