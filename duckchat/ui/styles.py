"""
duckchat/ui/styles.py
Console theme shared by the CLI and the analytics report.
"""

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.style import Style
from rich.theme import Theme

DUCKCHAT_THEME = Theme(
    {
        "duck.text": "bright_white",
        "duck.border": "dark_orange",
        "user.text": "bright_black",
        "tech.cyan": Style(color="turquoise2", bold=True),
        "success": "bright_green",
        "error": Style(color="red3", bold=True),
        "warning": Style(color="gold1", bold=True),
        "dim": "grey50",
    }
)

console = Console(theme=DUCKCHAT_THEME)


def create_duck_panel(content, title="🦆 DuckChat"):
    """Standard output frame."""
    return Panel(
        content,
        title=f"[duck.border]{title}[/]",
        title_align="left",
        border_style="duck.border",
        box=box.ROUNDED,
        padding=(1, 2),
    )
