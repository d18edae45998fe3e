"""
capture_control_mcp

MCP control coordinator for a fleet of packet capture agents.

Core ideas
1. Agents register themselves and expose start and stop over HTTP
2. The coordinator fans out start and stop and merges the raw captures
3. An operator re-filters the merged capture without capturing again
"""

__all__ = ["core", "pipeline", "cli"]
