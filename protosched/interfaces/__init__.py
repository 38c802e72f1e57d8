"""
Host-facing protocols and shared type aliases.
"""

from .protocols import Clock, TickSource

__all__ = ["Clock", "TickSource"]
