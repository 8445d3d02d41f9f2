"""CAB 环境变量配置管理。

环境变量:
    CAB_AGENT_PATH: agent 可执行文件路径（必需，启动会话时校验）

    CAB_WORKSPACE: agent 的工作目录
        - 默认为当前目录

    CAB_CREDENTIAL_ENV: 注入给 agent 的凭据环境变量名
        - 默认 ANTHROPIC_API_KEY

    CAB_API_KEY: 凭据值
        - 未设置时回退到父进程中 CAB_CREDENTIAL_ENV 指定的变量

    CAB_TURN_TIMEOUT: 单个 turn 的超时时间（秒）
        - 0/未设置 = 不限制
        - 超时后会 dispose 当前会话，下次请求重新启动 agent

    CAB_TERM_TIMEOUT: 终止 agent 时 SIGTERM 后的等待时间（秒）
        - 默认 2.0 秒

    CAB_DEBUG: 调试模式
        - true/1/yes = 开启 (MCP 响应包含统计信息)
        - false/0/no = 关闭 (默认)

    CAB_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (日志输出到临时文件)
        - false/0/no = 关闭 (默认，日志输出到 stderr)
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

__all__ = [
    "Config",
    "DEFAULT_CREDENTIAL_ENV",
    "load_config",
    "get_config",
    "reload_config",
]

DEFAULT_CREDENTIAL_ENV = "ANTHROPIC_API_KEY"
DEFAULT_TERM_TIMEOUT = 2.0


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_seconds(value: str | None, default: float) -> float:
    """解析秒数，无效值返回默认值，负数按 0 处理。"""
    if not value or not value.strip():
        return default
    try:
        return max(0.0, float(value))
    except ValueError:
        return default


@dataclass
class Config:
    """CAB 配置。

    Attributes:
        agent_path: agent 可执行文件路径
        workspace: agent 工作目录
        credential_env: 注入的凭据环境变量名
        api_key: 凭据值（不会出现在 repr 中）
        turn_timeout: turn 超时（秒），0 表示不限制
        term_timeout: SIGTERM 后的等待时间（秒）
        debug: 调试模式（响应包含统计信息）
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
    """

    agent_path: str | None = None
    workspace: Path = Path(".")
    credential_env: str = DEFAULT_CREDENTIAL_ENV
    api_key: str | None = None
    turn_timeout: float = 0.0
    term_timeout: float = DEFAULT_TERM_TIMEOUT
    debug: bool = False
    log_debug: bool = False
    log_file: str | None = None

    @property
    def has_credential(self) -> bool:
        return bool(self.api_key)

    def __repr__(self) -> str:
        return (
            f"Config(agent_path={self.agent_path}, "
            f"workspace={self.workspace}, "
            f"credential_env={self.credential_env}, "
            f"api_key={'set' if self.has_credential else 'unset'}, "
            f"turn_timeout={self.turn_timeout}, "
            f"term_timeout={self.term_timeout}, "
            f"debug={self.debug}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / "cli-agent-bridge"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"cab_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("CAB_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    credential_env = (os.environ.get("CAB_CREDENTIAL_ENV") or "").strip() or DEFAULT_CREDENTIAL_ENV
    api_key = os.environ.get("CAB_API_KEY") or os.environ.get(credential_env) or None

    agent_path = (os.environ.get("CAB_AGENT_PATH") or "").strip() or None
    workspace = Path(os.environ.get("CAB_WORKSPACE") or os.getcwd()).expanduser()

    return Config(
        agent_path=agent_path,
        workspace=workspace,
        credential_env=credential_env,
        api_key=api_key,
        turn_timeout=_parse_seconds(os.environ.get("CAB_TURN_TIMEOUT"), 0.0),
        term_timeout=_parse_seconds(os.environ.get("CAB_TERM_TIMEOUT"), DEFAULT_TERM_TIMEOUT),
        debug=_parse_bool(os.environ.get("CAB_DEBUG"), default=False),
        log_debug=log_debug,
        log_file=log_file,
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
