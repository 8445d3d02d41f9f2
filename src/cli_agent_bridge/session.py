"""Agent 会话：在 REPL 子进程之上实现 turn 协议。

一个 AgentSession 持有一个 ProcessSupervisor，负责：
- 将请求作为一行写入 agent stdin
- 把 stdout 行交给当前请求的 TurnAccumulator
- 在下一个结束提示符出现时交付 TurnResult
- 在流关闭、进程错误、写入失败或 dispose 时拒绝当前请求

协议是半双工的：同一会话同时只允许一个在途请求，
重叠的请求直接以 TurnInFlightError 拒绝（不排队）。
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from .config import DEFAULT_CREDENTIAL_ENV, Config
from .errors import (
    AgentConfigError,
    AgentProcessError,
    NotRunningError,
    StreamEndedError,
    TurnInFlightError,
    TurnInterruptedError,
    WriteFailureError,
)
from .runtime.process_runner import (
    DEFAULT_KILL_TIMEOUT,
    DEFAULT_TERM_TIMEOUT,
    ProcessSpec,
    ProcessSupervisor,
)
from .shared.parsers import TurnAccumulator, TurnResult, TurnState

__all__ = [
    "AgentSession",
    "PendingTurn",
    "SessionManager",
]

logger = logging.getLogger(__name__)


@dataclass
class PendingTurn:
    """在途请求。

    Attributes:
        text: 发送给 agent 的文本
        future: 完成时 set_result，失败时 set_exception
        accumulator: 正在累积的 turn
    """

    text: str
    future: asyncio.Future[TurnResult]
    accumulator: TurnAccumulator = field(default_factory=TurnAccumulator)


class AgentSession:
    """一个 agent REPL 子进程的会话。

    使用示例:
        session = AgentSession("/usr/local/bin/agent", "/workspace", api_key)
        await session.start()
        try:
            result = await session.send_message("list the files")
            for message in result.messages:
                print(message.text)
        finally:
            await session.dispose()

    dispose 之后会话不会再启动；需要新的 agent 时创建新的会话。
    """

    def __init__(
        self,
        bin_path: str | Path,
        cwd: str | Path,
        api_key: str,
        *,
        args: Sequence[str] = (),
        credential_env: str = DEFAULT_CREDENTIAL_ENV,
        term_timeout: float = DEFAULT_TERM_TIMEOUT,
        kill_timeout: float = DEFAULT_KILL_TIMEOUT,
    ) -> None:
        self.bin_path = str(bin_path)
        self.cwd = Path(cwd)
        self.credential_env = credential_env

        spec = ProcessSpec(
            argv=[self.bin_path, *args],
            cwd=self.cwd,
            env={**os.environ, credential_env: api_key},
        )
        self._supervisor = ProcessSupervisor(
            spec,
            on_line=self._on_line,
            on_close=self._on_close,
            on_exit=self._on_exit,
            on_error=self._on_error,
            term_timeout=term_timeout,
            kill_timeout=kill_timeout,
        )
        self._pending: PendingTurn | None = None
        self._stream_closed = False
        self._spawn_error: Exception | None = None

    async def __aenter__(self) -> "AgentSession":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.dispose()

    # =========================================================================
    # 状态
    # =========================================================================

    @property
    def is_running(self) -> bool:
        """进程存活且 stdout 仍然打开。"""
        return self._supervisor.is_running and not self._stream_closed

    @property
    def is_busy(self) -> bool:
        """是否有在途请求。"""
        return self._pending is not None

    @property
    def pid(self) -> int | None:
        return self._supervisor.pid

    @property
    def stderr_tail(self) -> list[str]:
        return self._supervisor.stderr_tail

    def is_disposed(self) -> bool:
        return self._supervisor.is_disposed

    # =========================================================================
    # 生命周期
    # =========================================================================

    async def start(self) -> None:
        """启动 agent 子进程。

        已运行或已 dispose 时为 no-op；启动失败通过日志报告，
        之后的 send_message 会以 AgentProcessError 失败。
        """
        if self._supervisor.is_running or self._supervisor.is_disposed:
            return
        self._stream_closed = False
        self._spawn_error = None
        await self._supervisor.start()
        if self._supervisor.is_running:
            logger.info(f"Agent session started pid={self._supervisor.pid} cwd={self.cwd}")

    async def dispose(self) -> None:
        """终止 agent 并结束会话（幂等，不可逆）。"""
        if self._supervisor.is_disposed:
            return
        pending = self._pending
        if pending is not None:
            self._reject(pending, NotRunningError("Agent process disposed"))
        await self._supervisor.dispose()
        logger.info(f"Agent session disposed bin={self.bin_path}")

    # =========================================================================
    # 请求
    # =========================================================================

    async def send_message(self, text: str) -> TurnResult:
        """发送一行文本，等待 agent 完成这个 turn。

        Args:
            text: 单行文本（不得包含换行）

        Returns:
            冻结的 TurnResult

        Raises:
            NotRunningError: 会话未启动、进程已退出或已 dispose
            TurnInFlightError: 已有在途请求
            ValueError: 文本包含换行
            WriteFailureError: 写入 stdin 失败
            StreamEndedError: stdout 在没有任何内容时关闭
            TurnInterruptedError: stdout 在 turn 中途关闭
            AgentProcessError: 子进程 I/O 错误（包括启动失败）
        """
        if not self.is_running:
            if self._spawn_error is not None and not self.is_disposed():
                raise AgentProcessError(str(self._spawn_error)) from self._spawn_error
            raise NotRunningError()
        if self._pending is not None:
            raise TurnInFlightError()
        if "\n" in text or "\r" in text:
            raise ValueError("message must be a single line")

        pending = PendingTurn(
            text=text,
            future=asyncio.get_running_loop().create_future(),
        )
        self._pending = pending
        logger.debug(f"Sending turn ({len(text)} chars) to pid={self._supervisor.pid}")

        try:
            try:
                await self._supervisor.write_line(text)
            except WriteFailureError as e:
                self._reject(pending, e)
            return await pending.future
        finally:
            # 调用方取消时也要注销，避免下一个 turn 的行被旧请求消费
            if self._pending is pending:
                self._pending = None

    def _resolve(self, pending: PendingTurn, result: TurnResult) -> None:
        if self._pending is pending:
            self._pending = None
        if not pending.future.done():
            pending.future.set_result(result)
        logger.debug(
            f"Turn completed: {len(result.messages)} messages, "
            f"{len(result.tool_calls)} tool calls"
        )

    def _reject(self, pending: PendingTurn, error: Exception) -> None:
        if self._pending is pending:
            self._pending = None
        if not pending.future.done():
            pending.future.set_exception(error)
        logger.debug(f"Turn rejected: {type(error).__name__}: {error}")

    # =========================================================================
    # Supervisor 回调
    # =========================================================================

    def _on_line(self, line: str) -> None:
        pending = self._pending
        if pending is None:
            logger.debug(f"Line outside of a turn dropped: {line[:100]!r}")
            return
        if pending.accumulator.feed(line) is TurnState.COMPLETE:
            self._resolve(pending, pending.accumulator.freeze())

    def _on_close(self) -> None:
        self._stream_closed = True
        pending = self._pending
        if pending is None:
            return
        if pending.accumulator.is_empty:
            self._reject(pending, StreamEndedError())
        else:
            self._reject(pending, TurnInterruptedError(pending.accumulator.freeze()))

    def _on_exit(self, returncode: int) -> None:
        tail = self._supervisor.stderr_tail
        logger.info(
            f"Agent process exited returncode={returncode}"
            + (f", last stderr: {tail[-1][:200]}" if tail else "")
        )

    def _on_error(self, error: Exception) -> None:
        logger.error(f"Agent process error: {error}")
        if self._supervisor.is_running:
            # stdout 读取已停止，后续 turn 无法解析
            self._stream_closed = True
        pending = self._pending
        if pending is None:
            if not self._supervisor.is_running:
                self._spawn_error = error
            return
        wrapped = AgentProcessError(str(error) or type(error).__name__)
        wrapped.__cause__ = error
        self._reject(pending, wrapped)


class SessionManager:
    """持有至多一个 AgentSession，按需创建和替换。

    已 dispose 或进程已退出的会话不会被重启，而是被新会话替换。

    Example:
        manager = SessionManager(get_config())
        session = await manager.get_or_create()
        result = await session.send_message("hello")
        ...
        await manager.aclose()
    """

    def __init__(self, config: Config) -> None:
        self.config = config
        self._session: AgentSession | None = None
        self._lock = asyncio.Lock()

    @property
    def session(self) -> AgentSession | None:
        return self._session

    def _validate(self) -> None:
        """校验创建会话所需的配置。

        Raises:
            AgentConfigError: 缺少 agent 路径、凭据或工作目录不存在
        """
        if not self.config.agent_path:
            raise AgentConfigError("No agent binary configured: set CAB_AGENT_PATH")
        if not self.config.has_credential:
            raise AgentConfigError(
                f"No credential configured: set CAB_API_KEY or {self.config.credential_env}"
            )
        if not self.config.workspace.is_dir():
            raise AgentConfigError(f"workspace is not a directory: {self.config.workspace}")

    async def get_or_create(self) -> AgentSession:
        """返回可用的会话，必要时创建并启动新会话。"""
        async with self._lock:
            current = self._session
            if current is not None and not current.is_disposed() and current.is_running:
                return current

            if current is not None:
                # 进程已退出但会话未 dispose：先释放
                await current.dispose()

            self._validate()
            session = AgentSession(
                self.config.agent_path,
                self.config.workspace,
                self.config.api_key or "",
                credential_env=self.config.credential_env,
                term_timeout=self.config.term_timeout,
            )
            await session.start()
            self._session = session
            return session

    async def reset(self) -> bool:
        """dispose 当前会话。

        Returns:
            是否有会话被 dispose
        """
        async with self._lock:
            session, self._session = self._session, None
        if session is None or session.is_disposed():
            return False
        await session.dispose()
        return True

    async def aclose(self) -> None:
        await self.reset()
