"""CLI Agent Bridge 入口点。

支持: python -m cli_agent_bridge
"""

from .app import main

if __name__ == "__main__":
    main()
