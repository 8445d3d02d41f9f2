"""REPL 输出解析器。

cli-agent-bridge shared/parsers v0.1.0

将 agent 的 stdout（带 ANSI 颜色的纯文本）切分为行、分类，
并按提示符边界累积为一个 TurnResult。

输出格式示例（去除颜色后）:
    You: Agent: first line
    second line
    tool: read_file({"path": "main.go"})
    You:
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from .base import (
    AGENT_PREFIX,
    LINE_KIND_PRECEDENCE,
    PROMPT_MARKER,
    TOOL_PREFIX,
    LineKind,
    TurnState,
)
from .unified import ToolCall, TurnMessage, TurnResult

__all__ = [
    "ANSI_SGR_PATTERN",
    "strip_ansi",
    "classify_line",
    "parse_tool_call",
    "LineFramer",
    "TurnAccumulator",
]

logger = logging.getLogger(__name__)

ANSI_SGR_PATTERN = re.compile(r"\x1b\[[0-9;]*m")

_KIND_PREFIXES: dict[LineKind, str] = {
    LineKind.PROMPT: PROMPT_MARKER,
    LineKind.TOOL_CALL: TOOL_PREFIX,
    LineKind.MESSAGE: AGENT_PREFIX,
}


def strip_ansi(text: str) -> str:
    """移除 SGR 颜色转义序列。"""
    return ANSI_SGR_PATTERN.sub("", text)


def classify_line(plain: str) -> tuple[LineKind, str]:
    """按优先级对一行（已去除颜色）分类。

    Args:
        plain: 去除 ANSI 序列后的行文本

    Returns:
        (行类型, 去掉标签后的剩余文本)；CONTINUATION 返回整行
    """
    for kind in LINE_KIND_PRECEDENCE:
        prefix = _KIND_PREFIXES.get(kind)
        if prefix is None:
            continue
        if plain.startswith(prefix):
            return kind, plain[len(prefix):]
    return LineKind.CONTINUATION, plain


def parse_tool_call(rest: str) -> ToolCall:
    """解析 `tool: ` 之后的部分。

    规则：
    - 没有 `(`：整段（去空白）为工具名，input 为 None
    - 有 `(`：第一个 `(` 之前为工具名，之后为 input，
      末尾若是 `)` 则去掉一个；不做括号配对

    Example:
        >>> parse_tool_call("search(query text)")
        ToolCall(kind='tool_call', name='search', input='query text')
        >>> parse_tool_call("calc(1 + (2").input
        '1 + (2'
    """
    open_idx = rest.find("(")
    if open_idx < 0:
        return ToolCall(name=rest.strip())
    tool_input = rest[open_idx + 1:]
    if tool_input.endswith(")"):
        tool_input = tool_input[:-1]
    return ToolCall(name=rest[:open_idx].strip(), input=tool_input)


class LineFramer:
    """把 stdout 文本流切分为行。

    agent 打印提示符后不换行就阻塞在 stdin 上，因此缓冲区中
    未结束的部分行如果（去色后）恰好是提示符，会被立即作为一行输出。

    部分行的缓冲不设上限：按长度截断会把一条消息拆成消息加续行，
    改变 turn 的内容。stdout 持续被读取，agent 不会因此阻塞。
    """

    def __init__(self) -> None:
        self._buffer = ""

    def feed(self, chunk: str) -> list[str]:
        """追加一段文本，返回其中已完整的行（不含换行符）。"""
        self._buffer += chunk
        lines: list[str] = []
        while "\n" in self._buffer:
            line, self._buffer = self._buffer.split("\n", 1)
            lines.append(line.rstrip("\r"))
        if self._buffer and strip_ansi(self._buffer) == PROMPT_MARKER:
            lines.append(self._buffer)
            self._buffer = ""
        return lines

    def close(self) -> list[str]:
        """流结束：输出剩余的部分行。"""
        rest, self._buffer = self._buffer, ""
        rest = rest.rstrip("\r")
        return [rest] if rest else []


@dataclass
class _MessageBuffer:
    lines: list[str] = field(default_factory=list)

    def freeze(self) -> TurnMessage:
        return TurnMessage(text="\n".join(self.lines))


class TurnAccumulator:
    """单个 turn 的行分类状态机。

    状态转换：
    - AWAITING_TURN_START + PROMPT -> 忽略（启动后或上一 turn 结束后的提示符）
    - IN_TURN + PROMPT -> COMPLETE
    - TOOL_CALL / MESSAGE -> 追加条目，进入 IN_TURN
    - CONTINUATION -> 续接到最后一条消息；还没有消息时丢弃

    Example:
        acc = TurnAccumulator()
        for line in ["You: ", "Agent: hello", "line2", "You: "]:
            acc.feed(line)
        assert acc.is_complete
        result = acc.freeze()
    """

    def __init__(self) -> None:
        self._items: list[_MessageBuffer | ToolCall] = []
        self._messages: list[_MessageBuffer] = []
        self._tool_calls: list[ToolCall] = []
        self.state = TurnState.AWAITING_TURN_START

    @property
    def is_empty(self) -> bool:
        return not self._messages and not self._tool_calls

    @property
    def is_complete(self) -> bool:
        return self.state is TurnState.COMPLETE

    def feed(self, raw_line: str) -> TurnState:
        """处理一行原始输出（可带 ANSI 序列），返回处理后的状态。"""
        if self.is_complete:
            logger.debug(f"Line after turn completion ignored: {raw_line[:100]!r}")
            return self.state
        return self._feed_plain(strip_ansi(raw_line))

    def _feed_plain(self, plain: str) -> TurnState:
        kind, rest = classify_line(plain)

        if kind is LineKind.PROMPT:
            if self.is_empty:
                # 提示符后紧跟的回复（同一物理行）按独立行处理
                if rest:
                    return self._feed_plain(rest)
                return self.state
            if rest:
                logger.debug(f"Text after closing prompt discarded: {rest[:100]!r}")
            self.state = TurnState.COMPLETE
            return self.state

        if kind is LineKind.TOOL_CALL:
            call = parse_tool_call(rest)
            self._tool_calls.append(call)
            self._items.append(call)
            self.state = TurnState.IN_TURN
            return self.state

        if kind is LineKind.MESSAGE:
            message = _MessageBuffer([rest])
            self._messages.append(message)
            self._items.append(message)
            self.state = TurnState.IN_TURN
            return self.state

        if self._messages:
            self._messages[-1].lines.append(plain)
        else:
            logger.debug(f"Continuation line without message dropped: {plain[:100]!r}")
        return self.state

    def freeze(self) -> TurnResult:
        """生成当前累积内容的不可变快照。"""
        frozen: dict[int, TurnMessage] = {id(m): m.freeze() for m in self._messages}
        entries = tuple(
            frozen[id(item)] if isinstance(item, _MessageBuffer) else item
            for item in self._items
        )
        return TurnResult(
            messages=tuple(frozen[id(m)] for m in self._messages),
            tool_calls=tuple(self._tool_calls),
            entries=entries,
        )
