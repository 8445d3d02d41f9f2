"""Turn 结果模型定义。

cli-agent-bridge shared/parsers v0.1.0

一个 turn 的结构化结果，由 REPL 输出逐行累积而成。
设计原则：
1. 两个独立序列 - messages / tool_calls 各自按出现顺序排列
2. 保留交错顺序 - entries 是按时间排序的 tagged union
3. 冻结后交付 - 调用方拿到的是不可变副本
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "TurnMessage",
    "ToolCall",
    "TurnEntry",
    "TurnResult",
]


class TurnMessage(BaseModel):
    """agent 消息（可能由续行拼接为多行）。"""

    model_config = ConfigDict(frozen=True)

    kind: Literal["message"] = "message"
    text: str = ""


class ToolCall(BaseModel):
    """agent 报告的一次工具调用。

    Attributes:
        name: 工具名
        input: 括号内的原始参数字符串，无括号时为 None
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["tool_call"] = "tool_call"
    name: str
    input: str | None = None


TurnEntry = Annotated[Union[TurnMessage, ToolCall], Field(discriminator="kind")]


class TurnResult(BaseModel):
    """一个完成的 turn。

    Attributes:
        messages: 消息序列
        tool_calls: 工具调用序列
        entries: 消息与工具调用按实际出现顺序合并的序列
    """

    model_config = ConfigDict(frozen=True)

    messages: tuple[TurnMessage, ...] = ()
    tool_calls: tuple[ToolCall, ...] = ()
    entries: tuple[TurnEntry, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.messages and not self.tool_calls

    def to_payload(self) -> dict[str, Any]:
        """转换为上层使用的 `{messages, toolCalls}` 结构。

        无参数的工具调用不输出 input 键。
        """
        tool_calls: list[dict[str, Any]] = []
        for call in self.tool_calls:
            item: dict[str, Any] = {"name": call.name}
            if call.input is not None:
                item["input"] = call.input
            tool_calls.append(item)
        return {
            "messages": [{"text": m.text} for m in self.messages],
            "toolCalls": tool_calls,
        }
