"""Tool Handler 基础抽象。

每个 MCP 工具对应一个 ToolHandler；所有处理器共享同一个 ToolContext。
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

from mcp.types import TextContent

from ..shared.response_formatter import DebugInfo, format_error_response
from ..tool_schema import TOOL_DESCRIPTIONS, create_tool_schema

if TYPE_CHECKING:
    from ..config import Config
    from ..session import SessionManager
    from ..shared.parsers import TurnResult

__all__ = [
    "ToolContext",
    "ToolHandler",
]


@dataclass
class ToolContext:
    """工具执行上下文：配置 + 会话管理器。"""

    config: "Config"
    sessions: "SessionManager"

    def resolve_debug(self, arguments: dict[str, Any]) -> bool:
        """参数中的 debug 优先于 CAB_DEBUG。"""
        if "debug" in arguments:
            return bool(arguments["debug"])
        return self.config.debug

    def make_debug_info(
        self,
        started_at: float,
        turn: "TurnResult | None" = None,
        *,
        pid: int | None = None,
        cancelled: bool = False,
    ) -> DebugInfo:
        return DebugInfo.from_turn(
            turn,
            duration_sec=time.monotonic() - started_at,
            pid=pid,
            cancelled=cancelled,
            log_file=self.config.log_file if self.config.log_debug else None,
        )


class ToolHandler(ABC):
    """工具处理器。

    子类设置 name 并实现 handle()；server 通过 run() 调用，
    参数校验失败时不会进入 handle()。
    """

    name: ClassVar[str]

    @property
    def description(self) -> str:
        return TOOL_DESCRIPTIONS.get(self.name, "")

    def get_input_schema(self) -> dict[str, Any]:
        return create_tool_schema(self.name)

    def validate(self, arguments: dict[str, Any]) -> str | None:
        """返回错误消息；参数有效时返回 None。"""
        return None

    async def run(self, arguments: dict[str, Any], ctx: ToolContext) -> list[TextContent]:
        error = self.validate(arguments)
        if error:
            return format_error_response(error)
        return await self.handle(arguments, ctx)

    @abstractmethod
    async def handle(
        self,
        arguments: dict[str, Any],
        ctx: ToolContext,
    ) -> list[TextContent]:
        """处理已校验的工具调用。"""
        ...
