"""MCP Cortex - knowledge capture server with timeline and documentation analysis."""

__version__ = "0.1.0"
