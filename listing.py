"""View models for the day list: category filter, item pool, week calendar.

Nothing here draws anything. A front end asks a `DayController` for its
`sections()` and renders whatever is visible.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Callable, Dict, Generic, Iterable, List, NamedTuple, Optional, TypeVar, Union

from planner import Change, DayData, PlannerStore, Project, as_date

log = logging.getLogger(__name__)

T = TypeVar("T")

# rows shown per section before the pool starts hiding items
DEFAULT_POOL_SIZE = 20

SECTIONS = ("projects", "lessons", "home_tasks")
SECTION_TITLES = {"projects": "Projects", "lessons": "Lessons", "home_tasks": "Home tasks"}


class Filter(str, Enum):
    NO_FILTERS = "NoFilters"
    ONLY_PROJECTS = "OnlyProjects"
    ONLY_LESSONS = "OnlyLessons"
    ONLY_HOME_TASKS = "OnlyHomeTasks"

    @property
    def label(self) -> str:
        return _FILTER_LABELS[self]

    @property
    def sections(self) -> tuple:
        return _FILTER_SECTIONS[self]

    def next(self) -> "Filter":
        members = list(Filter)
        return members[(members.index(self) + 1) % len(members)]


_FILTER_LABELS = {
    Filter.NO_FILTERS: "No filters",
    Filter.ONLY_PROJECTS: "Only projects",
    Filter.ONLY_LESSONS: "Only lessons",
    Filter.ONLY_HOME_TASKS: "Only home tasks",
}

_FILTER_SECTIONS = {
    Filter.NO_FILTERS: SECTIONS,
    Filter.ONLY_PROJECTS: ("projects",),
    Filter.ONLY_LESSONS: ("lessons",),
    Filter.ONLY_HOME_TASKS: ("home_tasks",),
}


def visible_sections(filter_: Filter, day: DayData) -> Dict[str, bool]:
    """Which sections to show: allowed by the filter and not empty."""
    return {name: name in filter_.sections and bool(getattr(day, name)) for name in SECTIONS}


def filter_by_priority(items: Iterable[T], priority: Optional[str]) -> List[T]:
    if not priority:
        return list(items)
    return [item for item in items if getattr(item, "priority", None) == priority]


class Slot(NamedTuple):
    visible: bool
    item: Optional[object]


class ItemPool(Generic[T]):
    """Reusable row slots bound to a list of items.

    With a fixed `size` the pool never grows: extra items are dropped (and
    logged) and unused slots are hidden. With `size=None` the pool grows to
    the largest list it has been bound to.
    """

    def __init__(self, size: Optional[int] = DEFAULT_POOL_SIZE) -> None:
        self.fixed = size is not None
        self._slots: List[Slot] = [Slot(False, None)] * (size or 0)

    def __len__(self) -> int:
        return len(self._slots)

    def bind(self, items: List[T]) -> List[Slot]:
        if len(items) > len(self._slots):
            if self.fixed:
                log.warning("Not enough rows in the pool: %d items, %d slots", len(items), len(self._slots))
            else:
                self._slots.extend([Slot(False, None)] * (len(items) - len(self._slots)))
        self._slots = [Slot(True, items[i]) if i < len(items) else Slot(False, None) for i in range(len(self._slots))]
        return list(self._slots)

    def visible(self) -> List[T]:
        return [s.item for s in self._slots if s.visible]


# -------------------------------
# Week calendar
# -------------------------------


def start_of_week(day: Union[date, datetime]) -> date:
    """Weeks start on Sunday."""
    d = as_date(day)
    return d - timedelta(days=(d.weekday() + 1) % 7)


class CalendarWeek:
    """A seven-day strip that can be paged by week and reports date selection."""

    def __init__(self, around: Optional[date] = None, today: Optional[date] = None) -> None:
        self._today = today
        self.start = start_of_week(around or self.today)
        self.selected: Optional[date] = None
        self._listeners: List[Callable[[date], None]] = []

    @property
    def today(self) -> date:
        return self._today or date.today()

    @property
    def days(self) -> List[date]:
        return [self.start + timedelta(days=i) for i in range(7)]

    @property
    def end(self) -> date:
        return self.start + timedelta(days=6)

    def next_week(self) -> None:
        self.start += timedelta(days=7)

    def previous_week(self) -> None:
        self.start -= timedelta(days=7)

    def jump_to(self, day: Union[date, datetime]) -> None:
        self.start = start_of_week(day)

    def month_year_label(self) -> str:
        start, end = self.start, self.end
        if start.month == end.month:
            return start.strftime("%B %Y")
        if start.year == end.year:
            return f"{start.strftime('%B')} - {end.strftime('%B')} {end.year}"
        return f"{start.strftime('%B %Y')} - {end.strftime('%B %Y')}"

    def day_state(self, day: date) -> str:
        if day < self.today:
            return "past"
        if day > self.today:
            return "future"
        return "today"

    def on_date_selected(self, callback: Callable[[date], None]) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def select(self, index: int) -> date:
        if not 0 <= index < 7:
            raise IndexError(f"day index {index} outside the week")
        self.selected = self.days[index]
        for callback in list(self._listeners):
            callback(self.selected)
        return self.selected

    def select_date(self, day: Union[date, datetime]) -> date:
        d = as_date(day)
        self.jump_to(d)
        return self.select(self.days.index(d))


# -------------------------------
# Day controller
# -------------------------------


class Section(NamedTuple):
    name: str
    title: str
    visible: bool
    rows: list


def format_date(value: Union[date, datetime]) -> str:
    return as_date(value).strftime("%b %d, %Y")


def format_clock(value: datetime) -> str:
    hour = value.hour % 12 or 12
    return f"{hour}:{value.minute:02d} {'PM' if value.hour >= 12 else 'AM'}"


def progress_label(project: Project) -> str:
    return f"{project.completed_tasks}/{len(project.tasks)} tasks"


class DayController:
    """Keeps one day's data in sync with the store and the active filter.

    Reloads when a date is selected and after every store change. Call
    `close()` to stop listening to the store.
    """

    def __init__(
        self,
        store: PlannerStore,
        day: Optional[date] = None,
        filter_: Filter = Filter.NO_FILTERS,
        pool_size: Optional[int] = DEFAULT_POOL_SIZE,
    ) -> None:
        self.store = store
        self.filter = filter_
        self.day = as_date(day or date.today())
        self.data: DayData = store.query_by_date(self.day)
        self._pools = {name: ItemPool(pool_size) for name in SECTIONS}
        self._listeners: List[Callable[[], None]] = []
        self._unsubscribe = store.subscribe(self._on_store_change)

    def close(self) -> None:
        self._unsubscribe()

    def on_refresh(self, callback: Callable[[], None]) -> None:
        self._listeners.append(callback)

    def select_date(self, day: Union[date, datetime]) -> None:
        self.day = as_date(day)
        self.reload()

    def apply_filter(self, filter_: Filter) -> None:
        self.filter = filter_
        self._refresh()

    def reload(self) -> None:
        self.data = self.store.query_by_date(self.day)
        self._refresh()

    def is_empty(self) -> bool:
        return self.data.is_empty()

    def sections(self) -> List[Section]:
        shown = visible_sections(self.filter, self.data)
        return [
            Section(name, SECTION_TITLES[name], shown[name], self._pools[name].bind(getattr(self.data, name)))
            for name in SECTIONS
        ]

    def _on_store_change(self, change: Change) -> None:
        self.reload()

    def _refresh(self) -> None:
        for callback in list(self._listeners):
            callback()
