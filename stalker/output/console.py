"""
Stalker Console Output
=======================

Rich-based display for StalkerKit results: connection summaries,
discovery and batch outcomes, and the channel, EPG and VOD listings.

Built on the shared :class:`KitConsole` so every command uses the same
theme.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Sequence

from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from shared.console import KitConsole
from shared.logger import mask_token

from stalker.core.models import (
    BatchTestResult,
    Channel,
    ConnectionResult,
    DiscoveryResult,
    Genre,
    Movie,
    Program,
    Season,
    Series,
    SubscriptionInfo,
    SubscriptionStatus,
    VodCategory,
)

# Profile keys worth showing; portals send dozens more.
_PROFILE_KEYS: tuple[str, ...] = (
    "id", "name", "login", "status", "stb_type", "locale", "country", "tariff_plan",
)


class StalkerConsoleOutput:
    """Formatted console output for StalkerKit results.

    Usage::

        output = StalkerConsoleOutput()
        output.display_connection(result)
        output.display_channels(channels)
    """

    STATUS_STYLES: dict[SubscriptionStatus, str] = {
        SubscriptionStatus.ACTIVE: "bold green",
        SubscriptionStatus.UNLIMITED: "bold cyan",
        SubscriptionStatus.EXPIRED: "bold red",
        SubscriptionStatus.UNKNOWN: "dim white",
    }

    def __init__(self, console: Optional[KitConsole] = None) -> None:
        self.console = console or KitConsole()

    # ================================================================== #
    #  Helpers
    # ================================================================== #

    def _subscription_text(self, info: Optional[SubscriptionInfo]) -> Text:
        if info is None:
            return Text("n/a", style="dim white")
        style = self.STATUS_STYLES.get(info.status, "dim white")
        label = info.status.value.upper()
        if info.expiry_date is not None:
            label += f"  (expires {info.expiry_date.isoformat()}"
            if info.days_remaining is not None:
                label += f", {info.days_remaining} day(s) left"
            label += ")"
        return Text(label, style=style)

    @staticmethod
    def _timestamp(value: Optional[int]) -> str:
        if not value:
            return ""
        return datetime.fromtimestamp(value).strftime("%Y-%m-%d %H:%M")

    # ================================================================== #
    #  Credentials
    # ================================================================== #

    def display_macs(self, macs: Sequence[str]) -> None:
        self.console.table(
            f"Generated MAC Addresses ({len(macs)})",
            ["#", "MAC"],
            [(i, mac) for i, mac in enumerate(macs, start=1)],
            styles=["dim", "bold bright_white"],
        )

    def display_validation(self, rows: Sequence[dict[str, Any]]) -> None:
        self.console.table(
            "MAC Validation",
            ["Input", "Formatted", "Valid"],
            [
                (row["input"], row["formatted"], "[green]yes[/green]" if row["valid"] else "[red]no[/red]")
                for row in rows
            ],
        )

    def display_connection(self, result: ConnectionResult) -> None:
        """Panel with authentication state, profile highlights and subscription."""
        grid = Table.grid(padding=(0, 2))
        grid.add_column(style="bold bright_magenta")
        grid.add_column()
        grid.add_row("Portal", result.portal_url)
        grid.add_row("MAC", result.mac_address)
        grid.add_row(
            "Authenticated",
            Text("yes", style="bold green") if result.authenticated else Text("no", style="bold red"),
        )
        if result.token:
            grid.add_row("Token", mask_token(result.token))
        for key in _PROFILE_KEYS:
            value = (result.profile or {}).get(key)
            if value not in (None, ""):
                grid.add_row(f"Profile {key}", str(value))
        grid.add_row("Subscription", self._subscription_text(result.subscription))

        border = "green" if result.authenticated else "red"
        self.console.print(Panel(grid, title="Connection", border_style=border))

    def display_discovery(self, result: DiscoveryResult) -> None:
        if result.found:
            self.console.success(result.message)
            self.console.print(f"  [bold]MAC:[/bold] {result.mac_address}")
        else:
            self.console.warning(result.message)

        self.console.print(f"  [bold]State:[/bold] {result.state.value}   "
                           f"[bold]Elapsed:[/bold] {result.elapsed:.1f}s")
        if result.outcomes:
            self.console.table(
                "Attempt Outcomes",
                ["Outcome", "Count"],
                sorted(result.outcomes.items()),
            )
        if result.tested_sample and not result.found:
            self.console.print(
                f"  [dim]Sample of tested MACs: {', '.join(result.tested_sample)}[/dim]"
            )

    def display_batch(self, result: BatchTestResult) -> None:
        rows: list[tuple[Any, ...]] = []
        for cred in result.working:
            rows.append((cred.mac, "[green]working[/green]", self._subscription_text(cred.subscription)))
        for mac in result.failed:
            rows.append((mac, "[red]failed[/red]", ""))

        summary = result.summary()
        self.console.table(
            "Batch Credential Test",
            ["MAC", "Result", "Subscription"],
            rows,
            caption=f"{summary['working']} working / {summary['failed']} failed / {summary['total']} total",
        )

    # ================================================================== #
    #  Content
    # ================================================================== #

    def display_genres(self, genres: Sequence[Genre]) -> None:
        self.console.table(
            f"Genres ({len(genres)})",
            ["ID", "Title", "Alias"],
            [(g.id, g.title, g.alias) for g in genres],
        )

    def display_channels(self, channels: Sequence[Channel]) -> None:
        self.console.table(
            f"Channels ({len(channels)})",
            ["ID", "No.", "Name", "Genre", "cmd"],
            [(c.id, c.number, c.name, c.tv_genre_id, c.cmd) for c in channels],
            styles=["dim", "", "bold", "", "dim"],
        )

    def display_epg(self, programs: Sequence[Program], channel_id: str = "") -> None:
        self.console.table(
            f"EPG {channel_id}".strip(),
            ["Start", "End", "Title", "Description"],
            [
                (
                    p.time or self._timestamp(p.start_timestamp),
                    p.time_to or self._timestamp(p.stop_timestamp),
                    p.name,
                    (p.descr or "")[:60],
                )
                for p in programs
            ],
        )

    def display_categories(self, categories: Sequence[VodCategory], title: str = "Categories") -> None:
        self.console.table(
            f"{title} ({len(categories)})",
            ["ID", "Title"],
            [(c.id, c.title) for c in categories],
        )

    def display_vod(self, items: Sequence[Movie | Series], title: str = "Movies") -> None:
        self.console.table(
            f"{title} ({len(items)})",
            ["ID", "Name", "Year", "IMDb", "cmd"],
            [(i.id, i.name, i.year, i.rating_imdb, i.cmd) for i in items],
            styles=["dim", "bold", "", "", "dim"],
        )

    def display_seasons(self, seasons: Sequence[Season]) -> None:
        self.console.table(
            f"Seasons ({len(seasons)})",
            ["ID", "Name", "Episodes"],
            [(s.id, s.name, len(s.series)) for s in seasons],
        )

    def display_stream(self, url: Optional[str]) -> None:
        if url:
            self.console.success("Stream resolved")
            self.console.print(f"  {url}")
        else:
            self.console.warning("Portal returned no playable stream URL")
