"""Form state shared by the lesson, home task, task and project editors.

A `FormState` holds raw field values and a mapping of condition name to
predicate. `save_enabled` is recomputed after every change and is true only
while every condition holds, so a form never has to report an error after
the fact: it simply refuses to build.

Time is kept the way a 12-hour picker hands it out: separate `hour`,
`minute` and `ampm` fields, ints or numeric strings.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, time
from typing import Any, Callable, Dict, List, Mapping, Optional

from planner import (
    PRIORITIES,
    ClockTime,
    Entity,
    HomeTask,
    Lesson,
    PlannerStore,
    Project,
    TaskData,
    as_date,
    combine,
    is_valid_clock,
)

log = logging.getLogger(__name__)

Values = Mapping[str, Any]
Predicate = Callable[[Values], bool]


def name_given(values: Values) -> bool:
    name = values.get("name")
    return isinstance(name, str) and bool(name.strip())


def date_chosen(values: Values) -> bool:
    # datetime is a date subclass; None is the unset sentinel
    return isinstance(values.get("date"), date)


def time_chosen(values: Values) -> bool:
    return is_valid_clock(values.get("hour"), values.get("minute"), values.get("ampm"))


def priority_chosen(values: Values) -> bool:
    return values.get("priority") in PRIORITIES


def has_tasks(values: Values) -> bool:
    return len(values.get("tasks") or ()) > 0


class FormState:
    """Field values plus the conditions that gate the save action."""

    def __init__(self, conditions: Mapping[str, Predicate], **initial: Any) -> None:
        self.conditions: Dict[str, Predicate] = dict(conditions)
        self._values: Dict[str, Any] = {}
        self._listeners: List[Callable[[bool], None]] = []
        self._save_enabled = False
        self.prefill(**initial)

    @property
    def values(self) -> Dict[str, Any]:
        return dict(self._values)

    @property
    def save_enabled(self) -> bool:
        return self._save_enabled

    def get(self, field: str, default: Any = None) -> Any:
        return self._values.get(field, default)

    def set(self, field: str, value: Any) -> None:
        self._values[field] = _clean(value)
        self._recompute()

    def prefill(self, **values: Any) -> None:
        for field, value in values.items():
            self._values[field] = _clean(value)
        self._recompute()

    def reset(self) -> None:
        self._values.clear()
        self._recompute()

    def failing(self) -> List[str]:
        return [name for name, check in self.conditions.items() if not check(self._values)]

    def subscribe(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        """Call `callback(save_enabled)` whenever the save state flips."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _recompute(self) -> None:
        enabled = not self.failing()
        if enabled == self._save_enabled:
            return
        self._save_enabled = enabled
        for callback in list(self._listeners):
            callback(enabled)


def _clean(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip()
    return value


class EntityForm:
    """Base for the create/edit forms.

    Subclasses declare `conditions` and implement `_make` (values -> entity)
    and `_fields_from` (entity -> values for edit mode).
    """

    conditions: Mapping[str, Predicate] = {}

    def __init__(self) -> None:
        self.state = FormState(self.conditions)
        self.editing: Optional[Any] = None

    @classmethod
    def for_edit(cls, entity):
        form = cls()
        form.editing = entity
        form.state.prefill(**form._fields_from(entity))
        return form

    @property
    def save_enabled(self) -> bool:
        return self.state.save_enabled

    def failing(self) -> List[str]:
        return self.state.failing()

    def set(self, field: str, value: Any) -> None:
        self.state.set(field, value)

    def set_time(self, hour, minute, ampm) -> None:
        self.state.prefill(hour=hour, minute=minute, ampm=ampm)

    @property
    def clock(self) -> Optional[ClockTime]:
        return ClockTime.from_fields(self.state.get("hour"), self.state.get("minute"), self.state.get("ampm"))

    def build(self):
        """Return the entity described by the form, or None while it is invalid."""
        if not self.save_enabled:
            log.debug("%s not ready, failing: %s", type(self).__name__, ", ".join(self.failing()))
            return None
        entity = self._make(self.state.values)
        if self.editing is not None:
            entity = entity.model_copy(update={"id": self.editing.id})
        return entity

    def submit(self, store: PlannerStore) -> Optional[Entity]:
        """Add the built entity to `store`, or replace the one being edited."""
        entity = self.build()
        if entity is None:
            log.debug("%s not saved, failing: %s", type(self).__name__, ", ".join(self.failing()))
            return None
        if self.editing is not None:
            stored = store.edit(self.editing, entity)
        else:
            stored = store.add(entity)
        self.editing = None
        self.state.reset()
        return stored

    def _when(self) -> datetime:
        return combine(self.state.get("date"), self.clock)

    def _make(self, values: Values):
        raise NotImplementedError

    def _fields_from(self, entity) -> Dict[str, Any]:
        raise NotImplementedError


def _clock_fields(when: datetime) -> Dict[str, Any]:
    clock = ClockTime.from_time(when)
    return {"date": when.date(), "hour": clock.hour, "minute": clock.minute, "ampm": clock.ampm}


class LessonForm(EntityForm):
    conditions = {"name": name_given, "date": date_chosen, "time": time_chosen}

    def _make(self, values: Values) -> Lesson:
        return Lesson(name=values["name"], date_time=self._when())

    def _fields_from(self, lesson: Lesson) -> Dict[str, Any]:
        return {"name": lesson.name, **_clock_fields(lesson.date_time)}


class HomeTaskForm(EntityForm):
    conditions = {"name": name_given, "date": date_chosen, "time": time_chosen, "priority": priority_chosen}

    def _make(self, values: Values) -> HomeTask:
        return HomeTask(
            name=values["name"],
            subject_name=values.get("subject") or None,
            date_time=self._when(),
            priority=values["priority"],
        )

    def _fields_from(self, task: HomeTask) -> Dict[str, Any]:
        return {
            "name": task.name,
            "subject": task.subject_name or "",
            "priority": task.priority,
            **_clock_fields(task.date_time),
        }


class TaskForm(EntityForm):
    """Editor for a single project task; tasks are submitted into a ProjectForm."""

    conditions = {"name": name_given, "date": date_chosen, "time": time_chosen, "priority": priority_chosen}

    def _make(self, values: Values) -> TaskData:
        completed = bool(self.editing is not None and self.editing.is_completed)
        return TaskData(name=values["name"], date_time=self._when(), priority=values["priority"], is_completed=completed)

    def _fields_from(self, task: TaskData) -> Dict[str, Any]:
        return {"name": task.name, "priority": task.priority, **_clock_fields(task.date_time)}

    def submit(self, project_form: "ProjectForm") -> Optional[TaskData]:
        task = self.build()
        if task is None:
            return None
        if self.editing is not None:
            project_form.replace_task(self.editing, task)
        else:
            project_form.add_task(task)
        self.editing = None
        self.state.reset()
        return task


class ProjectForm(EntityForm):
    """A project needs a name, a date and at least one task."""

    conditions = {"name": name_given, "date": date_chosen, "tasks": has_tasks}

    @property
    def tasks(self) -> List[TaskData]:
        return list(self.state.get("tasks") or [])

    def add_task(self, task: TaskData) -> None:
        self.state.set("tasks", self.tasks + [task])

    def remove_task(self, task: TaskData) -> None:
        self.state.set("tasks", [t for t in self.tasks if t.id != task.id])

    def replace_task(self, old: TaskData, new: TaskData) -> None:
        new = new if new.id == old.id else new.model_copy(update={"id": old.id})
        self.state.set("tasks", [new if t.id == old.id else t for t in self.tasks])

    def _make(self, values: Values) -> Project:
        return Project(
            name=values["name"],
            date=datetime.combine(as_date(values["date"]), time()),
            tasks=list(values["tasks"]),
        )

    def _fields_from(self, project: Project) -> Dict[str, Any]:
        return {"name": project.name, "date": project.date.date(), "tasks": list(project.tasks)}
