"""
metals-standalone - run the Metals language server headless with its MCP server enabled
"""

__version__ = "0.1.0"
__logo__ = "🛰"
