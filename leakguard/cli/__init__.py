"""
LeakGuard CLI.

Usage:
    leakguard watch <dir>          # Monitor a directory and deliver alerts
    leakguard scan <path>          # One-shot scan
    leakguard queue list           # Show undelivered alerts
    leakguard queue retry --all    # Retry them now
    leakguard register             # Register this device
"""

from .main import main

__all__ = ["main"]
