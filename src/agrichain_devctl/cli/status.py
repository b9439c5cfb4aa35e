"""Status display formatting utilities for the AgriChain launcher."""

import sys
from enum import Enum
from typing import Any


class StatusLevel(str, Enum):
    """Status level enumeration."""

    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class StatusFormatter:
    """Formatter for status information with optional colors."""

    # Color codes for terminal output
    COLORS = {
        StatusLevel.SUCCESS: "\033[32m",  # Green
        StatusLevel.INFO: "\033[36m",  # Cyan
        StatusLevel.WARNING: "\033[33m",  # Yellow
        StatusLevel.ERROR: "\033[31m",  # Red
        "BOLD": "\033[1m",
        "RESET": "\033[0m",
    }

    SYMBOLS = {
        StatusLevel.SUCCESS: "✓",
        StatusLevel.INFO: "ℹ",
        StatusLevel.WARNING: "⚠",
        StatusLevel.ERROR: "✗",
    }

    def __init__(self, use_colors: bool = True, use_symbols: bool = True):
        self.use_colors = (
            use_colors and hasattr(sys.stdout, "isatty") and sys.stdout.isatty()
        )
        self.use_symbols = use_symbols

    def _bold(self, text: str) -> str:
        if self.use_colors:
            return f"{self.COLORS['BOLD']}{text}{self.COLORS['RESET']}"
        return text

    def format_status(
        self, level: StatusLevel, message: str, details: dict[str, Any] | None = None
    ) -> str:
        """Format a status message with level, color and symbol."""
        symbol = self.SYMBOLS.get(level, "") if self.use_symbols else ""

        if self.use_colors:
            color = self.COLORS.get(level, "")
            reset = self.COLORS["RESET"]
            bold = self.COLORS["BOLD"]
        else:
            color = reset = bold = ""

        base = f"{color}{symbol} {bold}{level.value.upper()}{reset}{color}: {message}{reset}"

        if details:
            detail_lines = [f"  {key}: {value}" for key, value in details.items()]
            base += "\n" + "\n".join(detail_lines)

        return base

    def format_table(
        self, headers: list[str], rows: list[list[str]], title: str | None = None
    ) -> str:
        """Format data as a table."""
        if not headers or not rows:
            return "No data to display"

        col_widths = [len(header) for header in headers]
        for row in rows:
            for i, cell in enumerate(row):
                if i < len(col_widths):
                    col_widths[i] = max(col_widths[i], len(str(cell)))

        separator = "+" + "+".join("-" * (width + 2) for width in col_widths) + "+"

        def render(cells: list[Any]) -> str:
            padded = [
                f" {str(cells[i]) if i < len(cells) else '':<{col_widths[i]}} "
                for i in range(len(headers))
            ]
            return "|" + "|".join(padded) + "|"

        parts = []
        if title:
            parts.extend([self._bold(title), ""])

        parts.extend([separator, render(headers), separator])
        parts.extend(render(row) for row in rows)
        parts.append(separator)

        return "\n".join(parts)


class StatusDisplay:
    """High-level status display manager."""

    def __init__(self, use_colors: bool = True, use_symbols: bool = True):
        self.formatter = StatusFormatter(use_colors, use_symbols)

    def show_success(self, message: str, details: dict[str, Any] | None = None) -> str:
        """Display a success message."""
        return self.formatter.format_status(StatusLevel.SUCCESS, message, details)

    def show_info(self, message: str, details: dict[str, Any] | None = None) -> str:
        """Display an info message."""
        return self.formatter.format_status(StatusLevel.INFO, message, details)

    def show_warning(self, message: str, details: dict[str, Any] | None = None) -> str:
        """Display a warning message."""
        return self.formatter.format_status(StatusLevel.WARNING, message, details)

    def show_error(self, message: str, details: dict[str, Any] | None = None) -> str:
        """Display an error message."""
        return self.formatter.format_status(StatusLevel.ERROR, message, details)

    def show_banner(self, title: str) -> str:
        """Display a title underlined to its own width."""
        return f"{self.formatter._bold(title)}\n{'=' * len(title)}"


# Global status display instance
_status_display: StatusDisplay | None = None


def init_status_display(
    use_colors: bool = True, use_symbols: bool = True
) -> StatusDisplay:
    """Initialize global status display."""
    global _status_display
    _status_display = StatusDisplay(use_colors, use_symbols)
    return _status_display


def get_status_display() -> StatusDisplay:
    """Get global status display instance."""
    global _status_display
    if _status_display is None:
        _status_display = StatusDisplay()
    return _status_display


__all__ = [
    "StatusLevel",
    "StatusFormatter",
    "StatusDisplay",
    "init_status_display",
    "get_status_display",
]
