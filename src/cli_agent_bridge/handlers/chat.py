"""agent_chat / agent_reset 工具处理器。"""

from __future__ import annotations

import logging
import time
from typing import Any

import anyio
from mcp.types import TextContent

from .base import ToolContext, ToolHandler
from ..errors import AgentSessionError, TurnInterruptedError
from ..shared.parsers import TurnMessage, TurnResult
from ..shared.response_formatter import (
    ResponseData,
    format_error_response,
    format_response,
)

__all__ = ["ChatHandler", "ResetHandler"]

logger = logging.getLogger(__name__)


class ChatHandler(ToolHandler):
    """发送一条消息并等待 agent 完成这个 turn。

    超时（CAB_TURN_TIMEOUT）后 agent 仍可能在输出，无法与下一个请求区分，
    因此会 reset 会话，下次调用重新启动 agent。
    """

    name = "agent_chat"

    def validate(self, arguments: dict[str, Any]) -> str | None:
        prompt = arguments.get("prompt")
        if not prompt or not str(prompt).strip():
            return "Missing required argument: 'prompt'"
        if "\n" in str(prompt) or "\r" in str(prompt):
            return "'prompt' must be a single line"
        return None

    async def handle(
        self,
        arguments: dict[str, Any],
        ctx: ToolContext,
    ) -> list[TextContent]:
        # 原样发送，不修剪调用方的空白
        prompt = str(arguments["prompt"])
        debug = ctx.resolve_debug(arguments)
        timeout = ctx.config.turn_timeout
        started_at = time.monotonic()
        pid: int | None = None

        try:
            session = await ctx.sessions.get_or_create()
            pid = session.pid
            with anyio.fail_after(timeout if timeout > 0 else None):
                turn = await session.send_message(prompt)

        except TimeoutError:
            logger.warning(f"Agent turn timed out after {timeout:g}s (pid={pid}), resetting session")
            await ctx.sessions.reset()
            data = ResponseData(
                success=False,
                error=f"Agent did not finish the turn within {timeout:g}s; session was reset",
                debug_info=ctx.make_debug_info(started_at, pid=pid, cancelled=True),
            )
            return format_response(data, debug=debug)

        except anyio.get_cancelled_exc_class():
            logger.info(f"Tool '{self.name}' cancelled")
            raise

        except TurnInterruptedError as e:
            logger.warning(f"Agent turn interrupted (pid={pid}): {e}")
            data = ResponseData(
                turn=e.partial,
                success=False,
                error=str(e),
                debug_info=ctx.make_debug_info(started_at, e.partial, pid=pid),
            )
            return format_response(data, debug=debug)

        except (AgentSessionError, ValueError) as e:
            logger.warning(f"Tool '{self.name}' failed: {type(e).__name__}: {e}")
            return format_error_response(str(e))

        self._log_turn(turn)
        data = ResponseData(turn=turn, debug_info=ctx.make_debug_info(started_at, turn, pid=pid))
        return format_response(data, debug=debug)

    def _log_turn(self, turn: TurnResult) -> None:
        logger.debug(
            "[MCP] agent_chat turn:\n"
            f"  Messages: {len(turn.messages)}, tool calls: {len(turn.tool_calls)}\n"
            f"  Tools: {[call.name for call in turn.tool_calls]}"
        )


class ResetHandler(ToolHandler):
    """dispose 当前会话；下一次 agent_chat 启动新的 agent。"""

    name = "agent_reset"

    async def handle(
        self,
        arguments: dict[str, Any],
        ctx: ToolContext,
    ) -> list[TextContent]:
        disposed = await ctx.sessions.reset()
        text = "Agent session reset" if disposed else "No active agent session"
        return format_response(ResponseData(turn=TurnResult(messages=(TurnMessage(text=text),))))
