"""REPL 输出解析模块。

cli-agent-bridge shared/parsers v0.1.0

将 agent REPL 的彩色文本输出解析为结构化的 TurnResult。

使用示例:
    from cli_agent_bridge.shared.parsers import LineFramer, TurnAccumulator

    framer = LineFramer()
    acc = TurnAccumulator()
    for line in framer.feed(chunk):
        if acc.feed(line) is TurnState.COMPLETE:
            result = acc.freeze()
"""

from __future__ import annotations

from .base import (
    AGENT_PREFIX,
    LINE_KIND_PRECEDENCE,
    PROMPT_MARKER,
    TOOL_PREFIX,
    VERSION,
    LineKind,
    TurnState,
)
from .repl import (
    ANSI_SGR_PATTERN,
    LineFramer,
    TurnAccumulator,
    classify_line,
    parse_tool_call,
    strip_ansi,
)
from .unified import ToolCall, TurnEntry, TurnMessage, TurnResult

__all__ = [
    # 协议标记
    "PROMPT_MARKER",
    "AGENT_PREFIX",
    "TOOL_PREFIX",
    "LINE_KIND_PRECEDENCE",
    # 枚举
    "LineKind",
    "TurnState",
    # 模型
    "TurnMessage",
    "ToolCall",
    "TurnEntry",
    "TurnResult",
    # 解析
    "ANSI_SGR_PATTERN",
    "strip_ansi",
    "classify_line",
    "parse_tool_call",
    "LineFramer",
    "TurnAccumulator",
    # 版本信息
    "VERSION",
]
