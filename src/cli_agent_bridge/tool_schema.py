"""Tool Schema 定义。

包含工具描述、参数 schema 和 schema 创建函数。
"""

from __future__ import annotations

from typing import Any

__all__ = [
    "SUPPORTED_TOOLS",
    "TOOL_DESCRIPTIONS",
    "create_tool_schema",
]

# 支持的工具列表（用于校验）
SUPPORTED_TOOLS = {"agent_chat", "agent_reset"}

# 工具描述
TOOL_DESCRIPTIONS = {
    "agent_chat": """Send one message to the interactive CLI agent and wait for its reply.

SESSION:
- The agent is a long-running REPL; it remembers earlier messages until reset.
- One message at a time: a second call while a reply is pending is rejected.

INPUT:
- prompt must be a single line (no newlines).

OUTPUT:
- <tool_calls>: actions the agent reported, in order.
- <answer>: the agent's reply text.""",

    "agent_reset": """Stop the current CLI agent session.

The next agent_chat call starts a fresh agent with an empty conversation.""",
}

_CHAT_PROPERTIES: dict[str, Any] = {
    "prompt": {
        "type": "string",
        "description": "Single-line message for the agent.",
    },
    "debug": {
        "type": "boolean",
        "default": False,
        "description": "Include timing and count statistics in the response.",
    },
}


def create_tool_schema(tool_name: str) -> dict[str, Any]:
    """创建工具的 input schema。

    Args:
        tool_name: 工具名（agent_chat / agent_reset）

    Returns:
        JSON Schema 字典
    """
    if tool_name == "agent_chat":
        return {
            "type": "object",
            "properties": dict(_CHAT_PROPERTIES),
            "required": ["prompt"],
        }
    if tool_name == "agent_reset":
        return {"type": "object", "properties": {}, "required": []}
    raise ValueError(f"Unknown tool: {tool_name}")
