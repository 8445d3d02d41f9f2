"""Tool Handlers 模块。

提供工具处理器抽象和具体实现。
"""

from .base import ToolContext, ToolHandler
from .chat import ChatHandler, ResetHandler

__all__ = [
    "ToolContext",
    "ToolHandler",
    "ChatHandler",
    "ResetHandler",
]
