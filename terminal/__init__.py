"""
Remote Healthcare Registry Terminal Interface
=============================================
Command-line access to the registry operations.

Usage:
    python -m terminal.main --caller <account> <command> [args...]
"""

__version__ = "1.0.0"
