"""
Generation Relay CLI Tools

Command-line tools for talking to a running relay.

Tools:
- progress_monitor: relay HTTP client and video job progress display
"""

from .progress_monitor import ProgressMonitor, RelayClient, RelayError

__all__ = ["ProgressMonitor", "RelayClient", "RelayError"]
