"""
StalkerKit Console Interface
=============================

Rich-powered presentation helpers shared by every StalkerKit command:
a banner, section rules, levelled status lines, a progress bar, a
status spinner and styled tables.

References:
    - Rich library: https://github.com/Textualize/rich
"""

from __future__ import annotations

import datetime as _dt
from contextlib import contextmanager
from typing import Any, Generator, Optional, Sequence

from rich.align import Align
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

_KIT_THEME = Theme(
    {
        "kit.banner": "bold bright_cyan",
        "kit.section": "bold bright_magenta",
        "kit.success": "bold green",
        "kit.warning": "bold yellow",
        "kit.error": "bold red",
        "kit.info": "bold bright_blue",
        "kit.dim": "dim white",
        "kit.highlight": "bold bright_white",
    }
)

_BANNER_ART = r"""
[kit.banner]
  ___ _        _ _           _  ___ _
 / __| |_ __ _| | |_____ _ _| |/ (_) |_
 \__ \  _/ _` | | / / -_) '_| ' <| |  _|
 |___/\__\__,_|_|_\_\___|_| |_|\_\_|\__|
[/kit.banner]"""

_TAGLINE = "Stalker portal client and credential toolkit"

# level -> (theme style, marker)
_LEVELS: dict[str, tuple[str, str]] = {
    "success": ("kit.success", "[✔]"),
    "warning": ("kit.warning", "[⚠]"),
    "error": ("kit.error", "[✘]"),
    "info": ("kit.info", "[ℹ]"),
}


class KitConsole:
    """Themed wrapper around :class:`rich.console.Console`.

    Usage::

        con = KitConsole()
        con.banner("1.0.0")
        con.section("Discovery")
        con.success("Found working MAC")
    """

    def __init__(self, console: Optional[Console] = None) -> None:
        if console is None:
            console = Console(theme=_KIT_THEME, highlight=False)
        else:
            console.push_theme(_KIT_THEME)
        self._console = console

    def banner(self, version: str) -> None:
        now = _dt.datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        subtitle = (
            f"[kit.highlight]{_TAGLINE}[/kit.highlight]\n"
            f"[kit.dim]Version: {version}  |  {now}[/kit.dim]"
        )
        self._console.print(
            Panel(
                Align.center(Text.from_markup(_BANNER_ART + "\n" + subtitle)),
                border_style="bright_cyan",
                padding=(0, 2),
            )
        )

    def section(self, title: str) -> None:
        self._console.rule(f"  {title}  ", style="kit.section")
        self._console.print()

    # ------------------------------------------------------------------ #
    #  Status lines
    # ------------------------------------------------------------------ #

    def _line(self, level: str, message: str) -> None:
        style, marker = _LEVELS[level]
        self._console.print(f"[{style}]{marker} {level.upper()}:[/{style}] {message}")

    def success(self, message: str) -> None:
        self._line("success", message)

    def warning(self, message: str) -> None:
        self._line("warning", message)

    def error(self, message: str) -> None:
        self._line("error", message)

    def info(self, message: str) -> None:
        self._line("info", message)

    # ------------------------------------------------------------------ #
    #  Live displays
    # ------------------------------------------------------------------ #

    @contextmanager
    def progress(
        self,
        description: str,
        total: Optional[int] = None,
    ) -> Generator[tuple[Progress, Any], None, None]:
        """Yield ``(progress, task_id)`` for a bar counting *total* steps."""
        bar = Progress(
            SpinnerColumn("dots", style="bright_cyan"),
            TextColumn("[kit.info]{task.description}"),
            BarColumn(bar_width=40, style="bright_cyan", complete_style="bright_green"),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=self._console,
        )
        with bar:
            yield bar, bar.add_task(description, total=total)

    @contextmanager
    def status(self, message: str) -> Generator[Any, None, None]:
        with self._console.status(
            f"[kit.info]{message}[/kit.info]", spinner="dots", spinner_style="bright_cyan"
        ) as spinner:
            yield spinner

    # ------------------------------------------------------------------ #
    #  Tables
    # ------------------------------------------------------------------ #

    def table(
        self,
        title: str,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
        *,
        caption: Optional[str] = None,
        styles: Optional[Sequence[str]] = None,
    ) -> None:
        """Render *rows* under *columns*; ``None`` cells print empty.

        Args:
            title:    Table title.
            columns:  Column header labels.
            rows:     Row tuples; each cell is stringified.
            caption:  Optional footer caption.
            styles:   Optional per-column Rich styles, matched by position.
        """
        styles = list(styles or ())
        tbl = Table(
            title=title,
            caption=caption,
            border_style="bright_cyan",
            header_style="bold bright_magenta",
        )
        for idx, name in enumerate(columns):
            tbl.add_column(name, style=styles[idx] if idx < len(styles) else "")
        for row in rows:
            tbl.add_row(*("" if cell is None else str(cell) for cell in row))
        self._console.print(tbl)

    def print(self, *args: Any, **kwargs: Any) -> None:
        self._console.print(*args, **kwargs)
