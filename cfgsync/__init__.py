"""
cfgsync - Git-backed configuration sync engine.

This package keeps a local configuration tree (appearance, hotkeys, plugin
settings, themes) synchronized across machines using git as the transport,
with hierarchical settings profiles and an MCP tool server on top.
The server entry point lives in ``cfgsync.server.main``.
"""

__version__ = "1.0.0"
__author__ = "cfgsync Team"
__description__ = "Git-backed settings synchronization engine"
