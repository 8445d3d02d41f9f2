"""REPL 输出解析测试。

覆盖：
- ANSI 去色
- 行分类优先级
- 工具调用解析
- 行切分（含不换行的提示符）
- turn 状态机
"""

from __future__ import annotations

import pytest

from cli_agent_bridge.shared.parsers import (
    LINE_KIND_PRECEDENCE,
    LineFramer,
    LineKind,
    ToolCall,
    TurnAccumulator,
    TurnMessage,
    TurnResult,
    TurnState,
    classify_line,
    parse_tool_call,
    strip_ansi,
)


def wrap(text: str) -> str:
    """用 SGR 序列包裹一行，模拟 agent 的彩色输出。"""
    return f"\x1b[1;32m{text}\x1b[0m"


def run_turn(lines: list[str]) -> TurnAccumulator:
    acc = TurnAccumulator()
    for line in lines:
        acc.feed(line)
    return acc


class TestStripAnsi:
    """测试 ANSI 去色。"""

    def test_plain_text_unchanged(self):
        assert strip_ansi("Agent: hello") == "Agent: hello"

    def test_colored_label(self):
        assert strip_ansi("\x1b[94mYou\x1b[0m: ") == "You: "

    def test_multiple_params(self):
        assert strip_ansi("\x1b[1;31;40mboom\x1b[m") == "boom"


class TestClassifyLine:
    """测试行分类。"""

    def test_precedence_order(self):
        assert LINE_KIND_PRECEDENCE == (
            LineKind.PROMPT,
            LineKind.TOOL_CALL,
            LineKind.MESSAGE,
            LineKind.CONTINUATION,
        )

    @pytest.mark.parametrize(
        "line, kind, rest",
        [
            ("You: ", LineKind.PROMPT, ""),
            ("You: Agent: hi", LineKind.PROMPT, "Agent: hi"),
            ("tool: ping", LineKind.TOOL_CALL, "ping"),
            ("Agent: hello", LineKind.MESSAGE, "hello"),
            ("just text", LineKind.CONTINUATION, "just text"),
            ("", LineKind.CONTINUATION, ""),
            ("You:", LineKind.CONTINUATION, "You:"),
        ],
    )
    def test_kinds(self, line: str, kind: LineKind, rest: str):
        assert classify_line(line) == (kind, rest)


class TestParseToolCall:
    """测试工具调用解析。"""

    def test_with_input(self):
        assert parse_tool_call("search(query text)") == ToolCall(name="search", input="query text")

    def test_without_parentheses(self):
        call = parse_tool_call("ping")
        assert call.name == "ping"
        assert call.input is None

    def test_name_is_trimmed(self):
        assert parse_tool_call("  ping  ").name == "ping"
        assert parse_tool_call(" read_file ({})").name == "read_file"

    def test_unterminated_input_kept(self):
        call = parse_tool_call("calc(1 + (2")
        assert call.name == "calc"
        assert call.input == "1 + (2"

    def test_only_one_trailing_paren_stripped(self):
        assert parse_tool_call("calc(f(x))").input == "f(x)"

    def test_inner_paren_preserved(self):
        assert parse_tool_call("calc(a) + b").input == "a) + b"

    def test_empty_input(self):
        assert parse_tool_call("list_files()").input == ""

    def test_json_input(self):
        call = parse_tool_call('read_file({"path": "main.go"})')
        assert call.input == '{"path": "main.go"}'


class TestLineFramer:
    """测试行切分。"""

    def test_complete_lines(self):
        framer = LineFramer()
        assert framer.feed("a\nb\n") == ["a", "b"]

    def test_split_across_chunks(self):
        framer = LineFramer()
        assert framer.feed("Age") == []
        assert framer.feed("nt: hi\n") == ["Agent: hi"]

    def test_crlf(self):
        framer = LineFramer()
        assert framer.feed("Agent: hi\r\n") == ["Agent: hi"]

    def test_partial_prompt_flushed(self):
        framer = LineFramer()
        assert framer.feed("Agent: done\n\x1b[94mYou\x1b[0m: ") == [
            "Agent: done",
            "\x1b[94mYou\x1b[0m: ",
        ]

    def test_partial_prompt_split_inside_escape(self):
        framer = LineFramer()
        assert framer.feed("\x1b[94mYou\x1b[") == []
        assert framer.feed("0m: ") == ["\x1b[94mYou\x1b[0m: "]

    def test_partial_non_prompt_buffered(self):
        framer = LineFramer()
        assert framer.feed("You: more") == []
        assert framer.feed(" text\n") == ["You: more text"]

    def test_long_line_kept_whole(self):
        framer = LineFramer()
        body = "x" * (1024 * 1024)
        text = f"You: Agent: {body}\n"
        emitted: list[str] = []
        for start in range(0, len(text), 65536):
            emitted.extend(framer.feed(text[start:start + 65536]))
        assert emitted == [f"You: Agent: {body}"]

    def test_close_flushes_remainder(self):
        framer = LineFramer()
        framer.feed("tail")
        assert framer.close() == ["tail"]
        assert framer.close() == []


class TestTurnAccumulator:
    """测试 turn 状态机。"""

    def test_multiline_message(self):
        acc = run_turn(["You: ", "Agent: hello", "line2", "You: "])
        assert acc.is_complete
        result = acc.freeze()
        assert result.to_payload() == {"messages": [{"text": "hello\nline2"}], "toolCalls": []}

    def test_tool_only_turn(self):
        acc = run_turn(["You: ", "tool: search(query text)", "You: "])
        assert acc.is_complete
        assert acc.freeze().to_payload() == {
            "messages": [],
            "toolCalls": [{"name": "search", "input": "query text"}],
        }

    def test_tool_without_input_payload_omits_key(self):
        acc = run_turn(["tool: ping", "You: "])
        assert acc.freeze().to_payload()["toolCalls"] == [{"name": "ping"}]

    def test_initial_prompt_ignored(self):
        acc = TurnAccumulator()
        assert acc.feed("You: ") is TurnState.AWAITING_TURN_START
        assert acc.feed("You: ") is TurnState.AWAITING_TURN_START
        assert acc.is_empty

    def test_state_transitions(self):
        acc = TurnAccumulator()
        assert acc.feed("Agent: hi") is TurnState.IN_TURN
        assert acc.feed("more") is TurnState.IN_TURN
        assert acc.feed("You: ") is TurnState.COMPLETE

    def test_continuation_before_message_dropped(self):
        acc = run_turn(["You: ", "Chat with the agent.", "tool: ping", "", "You: "])
        result = acc.freeze()
        assert result.messages == ()
        assert result.tool_calls == (ToolCall(name="ping"),)

    def test_continuation_does_not_start_turn(self):
        acc = TurnAccumulator()
        assert acc.feed("stray") is TurnState.AWAITING_TURN_START
        assert acc.feed("You: ") is TurnState.AWAITING_TURN_START

    def test_continuation_goes_to_last_message(self):
        acc = run_turn(["Agent: one", "Agent: two", "tail", "You: "])
        assert [m.text for m in acc.freeze().messages] == ["one", "two\ntail"]

    def test_continuation_after_tool_joins_previous_message(self):
        acc = run_turn(["Agent: one", "tool: ping", "tail", "You: "])
        assert acc.freeze().messages == (TurnMessage(text="one\ntail"),)

    def test_blank_continuation_kept(self):
        acc = run_turn(["Agent: a", "", "b", "You: "])
        assert acc.freeze().messages[0].text == "a\n\nb"

    def test_reply_on_prompt_line(self):
        # agent 打印提示符不换行，回复紧跟在同一物理行上
        acc = run_turn(["Chat with the agent.", "You: Agent: hello", "world", "You: "])
        assert acc.freeze().messages == (TurnMessage(text="hello\nworld"),)

    def test_text_after_closing_prompt_discarded(self):
        acc = run_turn(["Agent: hi", "You: Agent: next"])
        assert acc.is_complete
        assert acc.freeze().messages == (TurnMessage(text="hi"),)

    def test_lines_after_completion_ignored(self):
        acc = run_turn(["Agent: hi", "You: ", "Agent: late"])
        assert acc.freeze().messages == (TurnMessage(text="hi"),)

    def test_entries_keep_interleaving(self):
        acc = run_turn([
            "Agent: looking",
            "tool: list_files(.)",
            "Agent: found",
            "tool: read_file(a.go)",
            "You: ",
        ])
        entries = acc.freeze().entries
        assert [e.kind for e in entries] == ["message", "tool_call", "message", "tool_call"]
        assert entries[1] == ToolCall(name="list_files", input=".")

    def test_freeze_is_snapshot(self):
        acc = TurnAccumulator()
        acc.feed("Agent: a")
        snapshot = acc.freeze()
        acc.feed("b")
        assert snapshot.messages[0].text == "a"
        assert acc.freeze().messages[0].text == "a\nb"

    def test_result_is_frozen(self):
        result = run_turn(["Agent: a", "You: "]).freeze()
        with pytest.raises(Exception):
            result.messages[0].text = "changed"


class TestAnsiVariants:
    """带颜色的行与去色后的行分类完全一致。"""

    @pytest.mark.parametrize(
        "lines",
        [
            ["You: ", "Agent: hello", "line2", "You: "],
            ["You: ", "tool: search(query text)", "You: "],
            ["You: ", "tool: ping", "You: "],
            ["You: ", "tool: calc(1 + (2", "You: "],
        ],
    )
    def test_wrapped_equals_plain(self, lines: list[str]):
        plain = run_turn(lines).freeze()
        colored = run_turn([wrap(line) for line in lines]).freeze()
        assert colored == plain
        assert isinstance(colored, TurnResult)

    def test_go_agent_colors(self):
        lines = [
            "\x1b[94mYou\x1b[0m: ",
            "\x1b[32mtool: read_file({\"path\": \"main.go\"})\x1b[0m",
            "\x1b[93mAgent\x1b[0m: done",
            "\x1b[94mYou\x1b[0m: ",
        ]
        result = run_turn(lines).freeze()
        assert result.tool_calls == (ToolCall(name="read_file", input='{"path": "main.go"}'),)
        assert result.messages == (TurnMessage(text="done"),)
