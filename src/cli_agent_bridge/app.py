"""CLI Agent Bridge 应用入口。

stdio 上运行 MCP server，负责日志配置、SIGTERM 和退出时的会话清理。
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys

from mcp.server.stdio import stdio_server

from .config import Config, get_config
from .server import create_server
from .session import SessionManager

__all__ = ["configure_logging", "run_server", "main"]

logger = logging.getLogger(__name__)


async def run_server() -> None:
    """运行 MCP Server（stdio transport）。

    SIGTERM 取消 server task。退出时总是 dispose agent 会话：
    agent 在独立的进程组中，不会随本进程一起收到信号。
    """
    config = get_config()
    logger.info(f"Starting CLI Agent Bridge MCP Server: {config}")

    sessions = SessionManager(config)
    server = create_server(sessions, config)
    loop = asyncio.get_running_loop()

    async def _run_server_impl() -> None:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options(),
            )
        logger.debug("MCP server completed normally")

    server_task = asyncio.create_task(_run_server_impl(), name="mcp-server")

    def _handle_sigterm() -> None:
        logger.info("SIGTERM received, cancelling server task...")
        if not server_task.done():
            server_task.cancel()

    sigterm_installed = False
    if sys.platform != "win32":
        loop.add_signal_handler(signal.SIGTERM, _handle_sigterm)
        sigterm_installed = True

    try:
        try:
            await server_task
        except asyncio.CancelledError:
            if not server_task.cancelled():
                raise
            logger.info("Server task cancelled by shutdown signal")

    finally:
        if sigterm_installed:
            loop.remove_signal_handler(signal.SIGTERM)
        if not server_task.done():
            server_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await server_task
        await sessions.aclose()
        logger.info("run_server: cleanup completed")


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(config: Config) -> None:
    """stdout 是 MCP 通道，日志只能写 stderr 或文件。

    CAB_LOG_DEBUG 时本包的 DEBUG 日志写入临时文件（路径见 config.log_file），
    否则以 INFO 写 stderr。第三方库保持 WARNING。
    """
    if config.log_debug and config.log_file:
        handler: logging.Handler = logging.FileHandler(config.log_file, encoding="utf-8")
        level = logging.DEBUG
    else:
        handler = logging.StreamHandler(sys.stderr)
        level = logging.INFO
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    logging.basicConfig(level=logging.WARNING, handlers=[handler])
    logging.getLogger("cli_agent_bridge").setLevel(level)


def main() -> None:
    """命令行入口：cli-agent-bridge。"""
    configure_logging(get_config())
    try:
        asyncio.run(run_server())
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")


if __name__ == "__main__":
    main()
