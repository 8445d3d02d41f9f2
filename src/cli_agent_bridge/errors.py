"""Agent 会话异常类。

所有异常都只作用于当前在途的请求（turn），不会打断 supervisor 的后台任务。
核心层不做重试：进程崩溃后由调用方 dispose 并重建会话。
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .shared.parsers import TurnResult

__all__ = [
    "AgentSessionError",
    "NotRunningError",
    "TurnInFlightError",
    "WriteFailureError",
    "StreamEndedError",
    "TurnInterruptedError",
    "AgentProcessError",
    "AgentConfigError",
]


class AgentSessionError(Exception):
    """Agent 会话基础异常。"""
    pass


class NotRunningError(AgentSessionError):
    """会话未启动、进程已退出或已 dispose 时发送请求。"""

    def __init__(self, message: str = "Agent process not running") -> None:
        super().__init__(message)


class TurnInFlightError(AgentSessionError):
    """已有请求在途时再次发送（协议是半双工的，没有请求 ID 可区分）。"""

    def __init__(self, message: str = "Agent turn already in flight") -> None:
        super().__init__(message)


class WriteFailureError(AgentSessionError):
    """写入子进程 stdin 失败（如管道已关闭）。"""
    pass


class StreamEndedError(AgentSessionError):
    """stdout 在未累积任何内容时关闭。"""

    def __init__(self, message: str = "Agent process ended unexpectedly") -> None:
        super().__init__(message)


class TurnInterruptedError(AgentSessionError):
    """stdout 在 turn 中途关闭（已有内容，但没有看到结束提示符）。

    Attributes:
        partial: 关闭前已累积的部分结果
    """

    def __init__(
        self,
        partial: "TurnResult",
        message: str = "Agent turn interrupted before completion",
    ) -> None:
        self.partial = partial
        super().__init__(message)


class AgentProcessError(AgentSessionError):
    """子进程级别的 I/O 错误（启动失败、运行时错误）。"""
    pass


class AgentConfigError(AgentSessionError):
    """配置错误（如缺少 agent 路径或 API key）。"""
    pass
