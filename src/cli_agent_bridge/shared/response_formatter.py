"""MCP 响应格式化器。

turn 结果以 XML-wrapped Markdown 返回给 MCP 客户端：

    <response>
      <tool_calls>            本 turn 中 agent 报告的工具调用（按出现顺序，可省略）
      <answer>                agent 消息，多条以空行分隔
      <debug_info>            统计信息（debug 时）
    </response>

失败时 <answer> 换成 <error>；turn 中途中断时附带 <partial_turn>。
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

from .parsers import ToolCall, TurnResult

if TYPE_CHECKING:
    from mcp.types import TextContent

__all__ = [
    "DebugInfo",
    "ResponseData",
    "ResponseFormatter",
    "get_formatter",
    "format_response",
    "format_error_response",
    "format_tool_call",
]

_INTERRUPTED_HINT = "The agent stopped mid-turn. The next request starts a new agent session."


@dataclass
class DebugInfo:
    """一次 agent_chat 调用的统计信息。"""

    duration_sec: float = 0.0
    message_count: int = 0
    tool_call_count: int = 0
    pid: int | None = None
    cancelled: bool = False
    log_file: str | None = None  # 仅 CAB_LOG_DEBUG 时设置

    @classmethod
    def from_turn(cls, turn: TurnResult | None, **kwargs: Any) -> "DebugInfo":
        if turn is not None:
            kwargs.setdefault("message_count", len(turn.messages))
            kwargs.setdefault("tool_call_count", len(turn.tool_calls))
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        """省略未设置的可选字段。"""
        data = asdict(self)
        data["duration_sec"] = round(self.duration_sec, 3)
        if self.pid is None:
            del data["pid"]
        if not self.cancelled:
            del data["cancelled"]
        if not self.log_file:
            del data["log_file"]
        return data


@dataclass
class ResponseData:
    """待格式化的响应。

    成功时 turn 是完成的结果；失败时 turn 可以是中断前的部分结果。
    """

    turn: TurnResult | None = None
    debug_info: DebugInfo | None = None
    success: bool = True
    error: str | None = None


def format_tool_call(call: ToolCall) -> str:
    """还原为 agent 打印的形式：`name(input)`。"""
    return f"{call.name}({call.input or ''})"


def _debug_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return f"{value:.3f}"
    return str(value)


class ResponseFormatter:
    """把 ResponseData 渲染为字符串。

    Example:
        >>> formatter = ResponseFormatter()
        >>> formatter.format(ResponseData(turn=result), debug=True)
    """

    def format(self, data: ResponseData, *, debug: bool = False) -> str:
        body = self._render_success(data) if data.success else self._render_failure(data)
        if debug and data.debug_info:
            body.append(self._render_debug_info(data.debug_info))
        return "\n".join(["<response>", *body, "</response>"])

    def _render_success(self, data: ResponseData) -> list[str]:
        turn = data.turn or TurnResult()
        body: list[str] = []
        if turn.tool_calls:
            body.append("  <tool_calls>")
            body.extend(
                f'    <tool_call index="{i}">{format_tool_call(call)}</tool_call>'
                for i, call in enumerate(turn.tool_calls, 1)
            )
            body.append("  </tool_calls>")
        answer = "\n\n".join(m.text for m in turn.messages)
        body.append(f"  <answer>\n{answer}\n  </answer>")
        return body

    def _render_failure(self, data: ResponseData) -> list[str]:
        body = [f"  <error>{data.error or 'Unknown error'}</error>"]
        partial = data.turn
        if partial is None or partial.is_empty:
            return body

        # 按实际交错顺序回放已收集的内容
        body.append("  <partial_turn>")
        for entry in partial.entries:
            if isinstance(entry, ToolCall):
                body.append(f"tool: {format_tool_call(entry)}")
            else:
                body.append(entry.text)
        body.append("  </partial_turn>")
        body.append(f"  <hint>{_INTERRUPTED_HINT}</hint>")
        return body

    def _render_debug_info(self, debug_info: DebugInfo) -> str:
        lines = ["  <debug_info>"]
        lines.extend(
            f"    <{key}>{_debug_value(value)}</{key}>"
            for key, value in debug_info.to_dict().items()
        )
        lines.append("  </debug_info>")
        return "\n".join(lines)


_formatter: ResponseFormatter | None = None


def get_formatter() -> ResponseFormatter:
    global _formatter
    if _formatter is None:
        _formatter = ResponseFormatter()
    return _formatter


def format_response(data: ResponseData, *, debug: bool = False) -> list[TextContent]:
    """格式化为 MCP TextContent 列表。"""
    from mcp.types import TextContent

    return [TextContent(type="text", text=get_formatter().format(data, debug=debug))]


def format_error_response(error: str) -> list[TextContent]:
    """所有错误都以 <response><error>...</error></response> 返回。"""
    return format_response(ResponseData(success=False, error=error))
