#!/usr/bin/env python3
"""DayPlanner CLI - projects, lessons and home tasks by day"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional

import parsedatetime as pdt
import typer
from dateutil import parser as dateutil_parser
from rich import print
from rich.logging import RichHandler
from rich.markup import escape

from formstate import EntityForm, HomeTaskForm, LessonForm, ProjectForm, TaskForm
from listing import CalendarWeek, DayController, Filter, filter_by_priority, format_clock, format_date, progress_label
from planner import (
    DATA_FILE,
    EntityNotFoundError,
    HomeTask,
    Lesson,
    PlannerError,
    PlannerStore,
    Project,
    find_task,
    parse_clock,
)

app = typer.Typer(no_args_is_help=True)

log = logging.getLogger("dayplanner")


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True)],
        force=True,
    )


def parse_datetime(date_str: str) -> Optional[datetime]:
    """Turn a `--date` value such as "today", "next friday" or "2024-05-01"
    into a datetime, or None when neither parser understands it.
    """
    if not date_str or not date_str.strip():
        return None

    cal = pdt.Calendar()
    try:
        dt, parse_status = cal.parseDT(date_str, sourceTime=datetime.now())
        # 0 means nothing matched
        if parse_status > 0:
            return dt
    except ValueError:
        log.debug("parsedatetime rejected %r", date_str)

    # absolute dates parsedatetime gave up on
    try:
        return dateutil_parser.parse(date_str, fuzzy=False)
    except (ValueError, OverflowError):
        return None


def _fail(message: str) -> None:
    print(f"[bold red]{message}[/bold red]")
    raise typer.Exit(code=1)


@contextmanager
def _planner_errors():
    try:
        yield
    except PlannerError as e:
        _fail(f"Error: {e}")


def _day(text: Optional[str]) -> date:
    if not text:
        return date.today()
    parsed = parse_datetime(text)
    if not parsed:
        _fail(f"Could not parse date: '{text}' (try 'tomorrow', 'next monday', '2025-05-01')")
    return parsed.date()


def _set_time(form: EntityForm, text: Optional[str]) -> None:
    if text is None:
        return
    clock = parse_clock(text)
    if clock is None:
        _fail(f"Could not parse time: '{text}' (try '2:30 PM', '9am')")
    form.set_time(*clock)


def _priority(text: Optional[str]) -> Optional[str]:
    return text.strip().capitalize() if text else text


def _store(ctx: typer.Context) -> PlannerStore:
    return PlannerStore(ctx.obj)


def _lookup(store: PlannerStore, prefix: str, kind: type):
    entry = store.find(prefix)
    if not isinstance(entry, kind):
        raise EntityNotFoundError(f"{prefix} is a {type(entry).__name__}, not a {kind.__name__}")
    return entry


def _submit(form: EntityForm, store: PlannerStore):
    entry = form.submit(store)
    if entry is None:
        _fail(f"Not saved, missing or invalid: {', '.join(form.failing())}")
    return entry


def _when(value: datetime) -> str:
    return f"{value.strftime('%a, %b %d')} @ {format_clock(value)}"


def _short(entry) -> str:
    return entry.id[:8]


@app.callback()
def main(
    ctx: typer.Context,
    data_file: Path = typer.Option(DATA_FILE, "--data-file", envvar="DAYPLANNER_FILE", help="Planner JSON file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output"),
):
    """Plan projects, lessons and home tasks by day."""
    configure_logging(verbose)
    ctx.obj = data_file


@app.command("add-lesson")
def add_lesson(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Lesson name"),
    on: Optional[str] = typer.Option(None, "--date", "-d", help="Day of the lesson (default today)"),
    at: Optional[str] = typer.Option(None, "--time", "-t", help="Start time, e.g. '2:30 PM'"),
):
    """Add a lesson.

    Example:
      dayplanner add-lesson "Math" --date 2024-05-01 --time "2:30 PM"
    """
    store = _store(ctx)
    form = LessonForm()
    form.set("name", name)
    form.set("date", _day(on))
    _set_time(form, at)
    with _planner_errors():
        lesson = _submit(form, store)
    print(f"[green]Added lesson {_short(lesson)}:[/green] {escape(lesson.name)} → {_when(lesson.date_time)}")


@app.command("add-homework")
def add_homework(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="What to do"),
    subject: Optional[str] = typer.Option(None, "--subject", "-s", help="Subject name"),
    on: Optional[str] = typer.Option(None, "--date", "-d", help="Due day (default today)"),
    at: Optional[str] = typer.Option(None, "--time", "-t", help="Due time, e.g. '9:00 AM'"),
    priority: Optional[str] = typer.Option(None, "--priority", "-p", help="Low, Medium or High"),
):
    """Add a home task."""
    store = _store(ctx)
    form = HomeTaskForm()
    form.state.prefill(name=name, subject=subject or "", date=_day(on), priority=_priority(priority))
    _set_time(form, at)
    with _planner_errors():
        task = _submit(form, store)
    subj = " " + escape(f"[{task.subject_name}]") if task.subject_name else ""
    print(f"[green]Added home task {_short(task)}:{subj}[/green] {escape(task.name)} → {_when(task.date_time)}")


def _task_from_entry(entry: str, day: date) -> TaskForm:
    """Fill a TaskForm from 'name|time|priority'."""
    parts = [p.strip() for p in entry.split("|")]
    if len(parts) != 3:
        _fail(f"Bad task '{entry}', expected 'name|time|priority'")
    name, at, priority = parts
    form = TaskForm()
    form.state.prefill(name=name, date=day, priority=_priority(priority))
    _set_time(form, at)
    return form


@app.command("add-project")
def add_project(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Project name"),
    on: Optional[str] = typer.Option(None, "--date", "-d", help="Project day (default today)"),
    tasks: Optional[List[str]] = typer.Option(None, "--task", "-T", help="Task as 'name|time|priority', repeatable"),
):
    """Add a project with at least one task.

    Example:
      dayplanner add-project "Essay" -d 2024-05-01 -T "Outline|9:00 AM|High"
    """
    store = _store(ctx)
    day = _day(on)
    form = ProjectForm()
    form.state.prefill(name=name, date=day)
    for entry in tasks or []:
        task_form = _task_from_entry(entry, day)
        if task_form.submit(form) is None:
            _fail(f"Task '{entry}' not added, missing or invalid: {', '.join(task_form.failing())}")
    with _planner_errors():
        project = _submit(form, store)
    print(f"[green]Added project {_short(project)}:[/green] {escape(project.name)} ({format_date(project.date)}, {progress_label(project)})")


@app.command("add-task")
def add_task(
    ctx: typer.Context,
    project_id: str = typer.Argument(..., help="Project id (prefix)"),
    name: str = typer.Argument(..., help="Task name"),
    on: Optional[str] = typer.Option(None, "--date", "-d", help="Task day (default project day)"),
    at: Optional[str] = typer.Option(None, "--time", "-t", help="Task time, e.g. '4 PM'"),
    priority: Optional[str] = typer.Option(None, "--priority", "-p", help="Low, Medium or High"),
):
    """Add a task to an existing project."""
    store = _store(ctx)
    with _planner_errors():
        project = _lookup(store, project_id, Project)
        form = ProjectForm.for_edit(project)
        task_form = TaskForm()
        task_form.state.prefill(name=name, date=_day(on) if on else project.date.date(), priority=_priority(priority))
        _set_time(task_form, at)
        if task_form.submit(form) is None:
            _fail(f"Task not added, missing or invalid: {', '.join(task_form.failing())}")
        project = _submit(form, store)
    print(f"[green]Added task to {escape(project.name)}[/green] ({progress_label(project)})")


@app.command("edit-lesson")
def edit_lesson(
    ctx: typer.Context,
    lesson_id: str = typer.Argument(..., help="Lesson id (prefix)"),
    name: Optional[str] = typer.Option(None, "--name", "-n"),
    on: Optional[str] = typer.Option(None, "--date", "-d"),
    at: Optional[str] = typer.Option(None, "--time", "-t"),
):
    """Change a lesson's name, day or time."""
    store = _store(ctx)
    with _planner_errors():
        form = LessonForm.for_edit(_lookup(store, lesson_id, Lesson))
        if name is not None:
            form.set("name", name)
        if on:
            form.set("date", _day(on))
        _set_time(form, at)
        lesson = _submit(form, store)
    print(f"[green]Updated lesson {_short(lesson)}:[/green] {escape(lesson.name)} → {_when(lesson.date_time)}")


@app.command("edit-homework")
def edit_homework(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Home task id (prefix)"),
    name: Optional[str] = typer.Option(None, "--name", "-n"),
    subject: Optional[str] = typer.Option(None, "--subject", "-s"),
    on: Optional[str] = typer.Option(None, "--date", "-d"),
    at: Optional[str] = typer.Option(None, "--time", "-t"),
    priority: Optional[str] = typer.Option(None, "--priority", "-p"),
):
    """Change any field of a home task."""
    store = _store(ctx)
    with _planner_errors():
        form = HomeTaskForm.for_edit(_lookup(store, task_id, HomeTask))
        if name is not None:
            form.set("name", name)
        if subject is not None:
            form.set("subject", subject)
        if on:
            form.set("date", _day(on))
        if priority is not None:
            form.set("priority", _priority(priority))
        _set_time(form, at)
        task = _submit(form, store)
    print(f"[green]Updated home task {_short(task)}:[/green] {escape(task.name)} → {_when(task.date_time)}")


@app.command("edit-project")
def edit_project(
    ctx: typer.Context,
    project_id: str = typer.Argument(..., help="Project id (prefix)"),
    name: Optional[str] = typer.Option(None, "--name", "-n"),
    on: Optional[str] = typer.Option(None, "--date", "-d"),
    drop_task: Optional[List[str]] = typer.Option(None, "--drop-task", help="Task id (prefix) to remove, repeatable"),
):
    """Rename, move or drop tasks from a project."""
    store = _store(ctx)
    with _planner_errors():
        project = _lookup(store, project_id, Project)
        form = ProjectForm.for_edit(project)
        if name is not None:
            form.set("name", name)
        if on:
            form.set("date", _day(on))
        for prefix in drop_task or []:
            form.remove_task(find_task(project, prefix))
        project = _submit(form, store)
    print(f"[green]Updated project {_short(project)}:[/green] {escape(project.name)} ({progress_label(project)})")


@app.command()
def complete(
    ctx: typer.Context,
    project_id: str = typer.Argument(..., help="Project id (prefix)"),
    task_id: str = typer.Argument(..., help="Task id (prefix)"),
    undo: bool = typer.Option(False, "--undo", help="Mark the task as not done"),
):
    """Mark a project task as done (or not done with --undo)."""
    store = _store(ctx)
    with _planner_errors():
        project = _lookup(store, project_id, Project)
        task = find_task(project, task_id)
        project = store.set_task_completed(project, task.id, not undo)
    state = "open" if undo else "done"
    print(f"[green]{escape(task.name)} marked {state}[/green] ({progress_label(project)})")


@app.command()
def remove(
    ctx: typer.Context,
    entry_id: str = typer.Argument(..., help="Project, lesson or home task id (prefix)"),
):
    """Delete a project, lesson or home task."""
    store = _store(ctx)
    with _planner_errors():
        entry = store.remove(store.find(entry_id))
    print(f"[green]Removed {type(entry).__name__.lower()}[/green] {escape(entry.name)}")


@app.command()
def view(
    ctx: typer.Context,
    on: Optional[str] = typer.Option(None, "--date", "-d", help="Day to show (default today)"),
    filter_: Filter = typer.Option(Filter.NO_FILTERS, "--filter", "-f", help="Which sections to show"),
    priority: Optional[str] = typer.Option(None, "--priority", "-p", help="Only home tasks with this priority"),
):
    """Show everything planned for one day, grouped by kind."""
    store = _store(ctx)
    day = _day(on)
    controller = DayController(store, day, filter_, pool_size=None)
    print(f"\n[bold yellow]{day.strftime('%a, %b %d %Y')}[/bold yellow] [dim]({filter_.label})[/dim]")
    if controller.is_empty():
        print("[dim]Nothing planned.[/dim]\n")
        raise typer.Exit()

    shown = False
    for section in controller.sections():
        if not section.visible:
            continue
        items = [slot.item for slot in section.rows if slot.visible]
        if section.name == "home_tasks":
            items = filter_by_priority(items, _priority(priority))
        if not items:
            continue
        shown = True
        print(f"[bold cyan]{section.title}[/bold cyan]")
        for item in items:
            _print_item(item)
    if not shown:
        print("[dim]Nothing matches this filter.[/dim]")
    print()  # blank line at end


def _print_item(item) -> None:
    if isinstance(item, Project):
        print(f"  {_short(item)}  {escape(item.name)}  [dim]{progress_label(item)}[/dim]")
        for t in item.tasks:
            status = "[dim]\\[done][/dim]" if t.is_completed else ""
            print(f"      {_short(t)}  {format_clock(t.date_time):8} {escape('[' + t.priority + ']')} {escape(t.name)} {status}")
    elif isinstance(item, HomeTask):
        subj = escape(f"[{item.subject_name}] ") if item.subject_name else ""
        print(f"  {_short(item)}  {format_clock(item.date_time):8} {subj}{escape(item.name)} [dim]({item.priority})[/dim]")
    else:
        print(f"  {_short(item)}  {format_clock(item.date_time):8} {escape(item.name)}")


@app.command()
def week(
    ctx: typer.Context,
    on: Optional[str] = typer.Option(None, "--date", "-d", help="Any day of the week to show (default today)"),
):
    """Show the week (Sunday to Saturday) around a day with per-day counts."""
    store = _store(ctx)
    calendar = CalendarWeek(around=_day(on))
    print(f"\n[bold yellow]{calendar.month_year_label()}[/bold yellow]")
    for d in calendar.days:
        data = store.query_by_date(d)
        state = calendar.day_state(d)
        style = {"past": "dim", "today": "bold magenta", "future": "white"}[state]
        marker = "•" if store.has_data_for_date(d) else " "
        counts = f"{len(data.projects)} projects, {len(data.lessons)} lessons, {len(data.home_tasks)} home tasks"
        print(f" {marker} [{style}]{d.strftime('%a %b %d')}[/{style}]  {counts if marker != ' ' else ''}")
    print()


@app.command()
def tui(
    ctx: typer.Context,
    on: Optional[str] = typer.Option(None, "--date", "-d", help="Day to open (default today)"),
):
    """Open the interactive day viewer."""
    from tui import PlannerTUI

    PlannerTUI(_store(ctx), _day(on)).run()


if __name__ == "__main__":
    app()
