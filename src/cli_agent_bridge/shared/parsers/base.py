"""基础类型和枚举定义。

cli-agent-bridge shared/parsers v0.1.0

本模块定义了 REPL 输出协议的基础类型，包括：
- 协议标记（提示符、消息标签、工具标签）
- 行类型枚举
- turn 状态机枚举
"""

from __future__ import annotations

from enum import Enum
from typing import Final

__all__ = [
    # 协议标记
    "PROMPT_MARKER",
    "AGENT_PREFIX",
    "TOOL_PREFIX",
    # 枚举
    "LineKind",
    "TurnState",
    "LINE_KIND_PRECEDENCE",
    # 版本信息
    "VERSION",
]

# 模块版本，用于分发追踪
VERSION: Final[str] = "0.1.0"

# agent 每次等待输入前打印的提示符（不带换行）
PROMPT_MARKER: Final[str] = "You: "
AGENT_PREFIX: Final[str] = "Agent: "
TOOL_PREFIX: Final[str] = "tool: "


class LineKind(str, Enum):
    """stdout 行类型。

    - PROMPT: 提示符，turn 边界
    - TOOL_CALL: `tool: name(input)` 工具调用
    - MESSAGE: `Agent: ...` 消息起始行
    - CONTINUATION: 其他行，续接到上一条消息
    """

    PROMPT = "prompt"
    TOOL_CALL = "tool_call"
    MESSAGE = "message"
    CONTINUATION = "continuation"


# 分类优先级：从前往后依次匹配，CONTINUATION 兜底
LINE_KIND_PRECEDENCE: Final[tuple[LineKind, ...]] = (
    LineKind.PROMPT,
    LineKind.TOOL_CALL,
    LineKind.MESSAGE,
    LineKind.CONTINUATION,
)


class TurnState(str, Enum):
    """单个 turn 的状态机。"""

    AWAITING_TURN_START = "awaiting_turn_start"  # 尚未看到内容行
    IN_TURN = "in_turn"                          # 至少已有一行内容
    COMPLETE = "complete"                        # 已看到结束提示符
