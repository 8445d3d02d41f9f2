"""CLI Agent Bridge MCP Server。

把一个交互式 CLI agent（REPL 子进程）暴露为两个 MCP 工具：
    agent_chat: 发送一行消息，返回 agent 的 turn
    agent_reset: 结束当前 agent 会话

会话由调用方创建的 SessionManager 持有，server 只负责分发。
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from mcp.server import Server
from mcp.types import TextContent, Tool

from .config import Config, get_config
from .handlers import ChatHandler, ResetHandler, ToolContext, ToolHandler
from .session import SessionManager
from .shared.response_formatter import format_error_response

__all__ = ["create_server"]

logger = logging.getLogger(__name__)


def _summarize_arguments(arguments: dict[str, Any]) -> dict[str, Any]:
    return {
        key: value[:100] + "..." if isinstance(value, str) and len(value) > 100 else value
        for key, value in arguments.items()
    }


def create_server(
    sessions: SessionManager,
    config: Config | None = None,
) -> Server:
    """创建 MCP Server。

    Args:
        sessions: 会话管理器（由调用方负责 aclose）
        config: 配置，默认使用全局配置
    """
    ctx = ToolContext(config=config or get_config(), sessions=sessions)
    handlers: dict[str, ToolHandler] = {
        handler.name: handler for handler in (ChatHandler(), ResetHandler())
    }
    server = Server("cli-agent-bridge")

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        return [
            Tool(
                name=handler.name,
                description=handler.description,
                inputSchema=handler.get_input_schema(),
            )
            for handler in handlers.values()
        ]

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        arguments = arguments or {}
        logger.debug(f"[MCP] call_tool {name} {_summarize_arguments(arguments)}")

        handler = handlers.get(name)
        if handler is None:
            return format_error_response(f"Unknown tool '{name}'")

        try:
            return await handler.run(arguments, ctx)
        except asyncio.CancelledError:
            logger.info(f"Tool '{name}' cancelled")
            raise
        except Exception as e:
            logger.error(f"Tool '{name}' error: {type(e).__name__}: {e}", exc_info=True)
            return format_error_response(str(e))

    return server
