"""
classpy Console Interface
==========================

Rich-powered console abstraction used by the classpy command line.

The class wraps :class:`rich.console.Console` and adds convenience methods
for a banner, section headers, severity-coloured messages and a status
spinner, all with consistent styling.

References:
    - Rich library: https://github.com/Textualize/rich
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Generator

from rich.console import Console
from rich.panel import Panel
from rich.theme import Theme

# ---------------------------------------------------------------------------
# Theme -- consistent palette across all classpy output
# ---------------------------------------------------------------------------
_CLASSPY_THEME = Theme(
    {
        "classpy.banner": "bold bright_cyan",
        "classpy.section": "bold bright_magenta",
        "classpy.success": "bold green",
        "classpy.warning": "bold yellow",
        "classpy.error": "bold red",
        "classpy.info": "bold bright_blue",
        "classpy.dim": "dim white",
        "classpy.name": "bold bright_white",
        "classpy.desc": "bright_green",
        "classpy.range": "dim cyan",
    }
)

_TAGLINE = "Structural inspector for .class, .dex and luac files"


class ClasspyConsole:
    """Unified console interface for classpy.

    Usage::

        con = ClasspyConsole()
        con.banner()
        con.section("Component Tree")
        con.success("Decoded 312 components")
    """

    def __init__(self, *, quiet: bool = False, record: bool = False) -> None:
        """Initialise the console.

        Args:
            quiet:  Suppress all output (useful in library / test mode).
            record: Enable Rich recording for text / HTML export.
        """
        self._console = Console(
            theme=_CLASSPY_THEME,
            quiet=quiet,
            record=record,
            highlight=False,
        )

    @property
    def rich(self) -> Console:
        """Direct access to the underlying Rich Console instance."""
        return self._console

    # ------------------------------------------------------------------ #
    #  Banner / sections
    # ------------------------------------------------------------------ #

    def banner(self, version: str = "1.0.0") -> None:
        """Display the classpy banner panel."""
        self._console.print(
            Panel(
                f"[classpy.banner]classpy[/classpy.banner]\n"
                f"[classpy.dim]{_TAGLINE}  |  version {version}[/classpy.dim]",
                border_style="bright_cyan",
                padding=(0, 2),
            )
        )

    def section(self, title: str) -> None:
        """Print a prominent section header."""
        self._console.rule(
            f"  {title}  ",
            style="classpy.section",
            characters="─",
        )
        self._console.print()

    # ------------------------------------------------------------------ #
    #  Message helpers (severity-coloured)
    # ------------------------------------------------------------------ #

    def success(self, message: str) -> None:
        self._console.print(
            f"[classpy.success][✔] SUCCESS:[/classpy.success] {message}"
        )

    def warning(self, message: str) -> None:
        self._console.print(
            f"[classpy.warning][⚠] WARNING:[/classpy.warning] {message}"
        )

    def error(self, message: str) -> None:
        self._console.print(
            f"[classpy.error][✘] ERROR:[/classpy.error] {message}"
        )

    # ------------------------------------------------------------------ #
    #  Status spinner
    # ------------------------------------------------------------------ #

    @contextmanager
    def status(
        self, message: str = "Working..."
    ) -> Generator[Any, None, None]:
        """Context-manager showing a spinner with a status message."""
        with self._console.status(
            f"[classpy.info]{message}[/classpy.info]",
            spinner="dots",
            spinner_style="bright_cyan",
        ) as status_obj:
            yield status_obj

    # ------------------------------------------------------------------ #
    #  Utility
    # ------------------------------------------------------------------ #

    def print(self, *args: Any, **kwargs: Any) -> None:
        """Proxy to :meth:`rich.console.Console.print`."""
        self._console.print(*args, **kwargs)

    def blank(self, count: int = 1) -> None:
        """Print *count* blank lines."""
        for _ in range(count):
            self._console.print()

    def divider(self, style: str = "dim") -> None:
        """Print a thin horizontal rule."""
        self._console.rule(style=style)

    def export_text(self) -> str:
        """Export recorded console output as plain text (requires ``record=True``)."""
        return self._console.export_text()
