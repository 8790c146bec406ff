#!/usr/bin/env python3
"""DayPlanner TUI - one-day view with a week strip

Shows the selected day's projects, lessons and home tasks under a
Sunday-to-Saturday week strip. The view follows the store: any change
made while it is open re-renders the day.

Keys:
  Left / Right   Previous / next day
  [ / ]          Previous / next week
  f              Cycle filter (all, projects, lessons, home tasks)
  t              Jump to today
  q / Ctrl-C     Quit
"""
from __future__ import annotations

from datetime import date, timedelta
from typing import Optional

from rich.console import Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import Footer, Header, Static

from listing import CalendarWeek, DayController, format_clock, format_date, progress_label
from planner import HomeTask, PlannerStore, Project

STATE_STYLES = {"past": "dim", "today": "bold magenta", "future": "white"}


def render_week(calendar: CalendarWeek, store: PlannerStore) -> Table:
    table = Table.grid(expand=True)
    for _ in calendar.days:
        table.add_column(ratio=1, justify="center")
    cells = []
    for d in calendar.days:
        style = STATE_STYLES[calendar.day_state(d)]
        if d == calendar.selected:
            style += " reverse"
        dot = "•" if store.has_data_for_date(d) else " "
        cells.append(Text(f"{d.strftime('%a')}\n{d.day:2} {dot}", style=style))
    table.add_row(*cells)
    return table


def _row(item) -> Text:
    if isinstance(item, Project):
        text = Text(f"{item.name}  ")
        text.append(progress_label(item), style="dim")
        for t in item.tasks:
            mark = "✓" if t.is_completed else "·"
            text.append(f"\n   {mark} {format_clock(t.date_time):8} {t.name} ({t.priority})", style="dim" if t.is_completed else "")
        return text
    text = Text(f"{format_clock(item.date_time):8} ")
    if isinstance(item, HomeTask):
        if item.subject_name:
            text.append(f"{item.subject_name} ", style="cyan")
        text.append(item.name)
        text.append(f" ({item.priority})", style="dim")
    else:
        text.append(item.name)
    return text


def render_day(controller: DayController, calendar: CalendarWeek) -> Panel:
    """Build the whole screen: week strip, then one panel per visible section."""
    parts = [
        Panel(render_week(calendar, controller.store), title=calendar.month_year_label(), border_style="cyan"),
    ]
    if controller.is_empty():
        parts.append(Text("Nothing planned for this day.", style="dim"))
    for section in controller.sections():
        if not section.visible:
            continue
        body = Text("\n").join(_row(slot.item) for slot in section.rows if slot.visible)
        parts.append(Panel(body, title=section.title, border_style="green"))
    title = f"{format_date(controller.day)} | {controller.filter.label}"
    return Panel(Group(*parts), title=title, border_style="yellow")


class PlannerTUI(App):
    CSS = """
    Screen { align: center middle; }
    #main { width: 95%; height: auto; }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("left", "previous_day", "Prev day"),
        Binding("right", "next_day", "Next day"),
        Binding("left_square_bracket", "previous_week", "Prev week"),
        Binding("right_square_bracket", "next_week", "Next week"),
        Binding("f", "cycle_filter", "Filter"),
        Binding("t", "today", "Today"),
    ]

    def __init__(self, store: PlannerStore, day: Optional[date] = None) -> None:
        super().__init__()
        day = day or date.today()
        self.calendar = CalendarWeek(around=day)
        self.controller = DayController(store, day)

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield Static(id="main")
        yield Footer()

    def on_mount(self) -> None:
        self.calendar.on_date_selected(self.controller.select_date)
        self.controller.on_refresh(self.refresh_main)
        self.calendar.select_date(self.controller.day)

    def on_unmount(self) -> None:
        self.controller.close()

    # helpers
    def refresh_main(self) -> None:
        main = self.query_one("#main", Static)
        main.update(render_day(self.controller, self.calendar))

    def action_previous_day(self) -> None:
        self.calendar.select_date(self.controller.day - timedelta(days=1))

    def action_next_day(self) -> None:
        self.calendar.select_date(self.controller.day + timedelta(days=1))

    def action_previous_week(self) -> None:
        self.calendar.select_date(self.controller.day - timedelta(days=7))

    def action_next_week(self) -> None:
        self.calendar.select_date(self.controller.day + timedelta(days=7))

    def action_cycle_filter(self) -> None:
        self.controller.apply_filter(self.controller.filter.next())

    def action_today(self) -> None:
        self.calendar.select_date(date.today())
