"""
Color scheme and status lines for the registry command-line tool.
Uses ANSI escape codes; disabled when output is not a terminal or NO_COLOR is set.
"""

import os
import sys


class Colors:
    """ANSI color codes for terminal output."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    WHITE = "\033[37m"

    @classmethod
    def disable(cls):
        """Disable colors (for non-terminal output)."""
        for attr in dir(cls):
            if not attr.startswith('_') and attr.isupper():
                setattr(cls, attr, "")


if os.environ.get("NO_COLOR") or not sys.stdout.isatty():
    Colors.disable()


class Style:
    """Semantic styles for consistent output."""

    SUCCESS = Colors.GREEN
    ERROR = Colors.RED
    TITLE = Colors.BOLD + Colors.WHITE


def print_section(title: str):
    """Print a section title."""
    print(f"{Style.TITLE}--- {title} ---{Colors.RESET}")


def print_success(message: str):
    """Print a success message."""
    print(f"{Style.SUCCESS}[OK] {message}{Colors.RESET}")


def print_error(message: str):
    """Print an error message."""
    print(f"{Style.ERROR}[ERROR] {message}{Colors.RESET}", file=sys.stderr)
