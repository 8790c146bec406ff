"""DayPlanner core - entities, clock helpers and the JSON-backed store"""
from __future__ import annotations

import json
import logging
import re
import shutil
import tempfile
import threading
import uuid
from datetime import date, datetime, time
from pathlib import Path
from typing import Callable, Dict, List, NamedTuple, Optional, Union

from pydantic import BaseModel, Field, ValidationError

log = logging.getLogger(__name__)

# store planner.json in the user's home directory by default
DATA_FILE = Path.home() / ".dayplanner" / "planner.json"

PRIORITIES = ("Low", "Medium", "High")
AM = "AM"
PM = "PM"


def new_id() -> str:
    return uuid.uuid4().hex


class PlannerError(Exception):
    """Base class for errors raised by the planner."""


class EntityNotFoundError(PlannerError):
    """No stored entity matches the given id."""


class AmbiguousIdError(PlannerError):
    """An id prefix matches more than one stored entity."""


class PersistenceError(PlannerError):
    """The planner file could not be written."""


class StoreThreadError(PlannerError):
    """A store mutation was attempted from a thread that does not own it."""


class TaskData(BaseModel):
    """A single actionable item inside a Project."""

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1)
    date_time: datetime
    priority: str
    is_completed: bool = False

    model_config = {"extra": "forbid"}


class Project(BaseModel):
    """A named, dated container of tasks.

    - `date` is the day the project is planned for; its time part is ignored
      by date queries.
    - `tasks` keeps insertion order for display only.
    """

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1)
    date: datetime
    tasks: List[TaskData] = Field(default_factory=list)

    model_config = {"extra": "forbid"}

    @property
    def completed_tasks(self) -> int:
        return sum(1 for t in self.tasks if t.is_completed)

    @property
    def completion_ratio(self) -> float:
        if not self.tasks:
            return 0.0
        return self.completed_tasks / len(self.tasks)


class Lesson(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1)
    date_time: datetime
    # UI-only state, never written to disk
    is_expanded: bool = Field(default=False, exclude=True)

    model_config = {"extra": "forbid"}


class HomeTask(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1)
    subject_name: Optional[str] = None
    date_time: datetime
    priority: str
    is_expanded: bool = Field(default=False, exclude=True)

    model_config = {"extra": "forbid"}


Entity = Union[Project, Lesson, HomeTask]


# -------------------------------
# 12-hour clock
# -------------------------------

_CLOCK_RE = re.compile(r"^\s*(\d{1,2})(?::(\d{1,2}))?\s*([AaPp][Mm])\s*$")


def _as_int(value) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def is_valid_clock(hour, minute, ampm) -> bool:
    """True when hour/minute/AM-PM form a valid 12-hour time.

    Hour and minute may be ints or numeric strings ("09", "30") since
    time pickers hand out their current labels as text.
    """
    h = _as_int(hour)
    m = _as_int(minute)
    if h is None or m is None or not isinstance(ampm, str):
        return False
    return 1 <= h <= 12 and 0 <= m <= 59 and ampm.strip().upper() in (AM, PM)


def to_24_hour(hour: int, ampm: str) -> int:
    ampm = ampm.strip().upper()
    if ampm == PM and hour != 12:
        return hour + 12
    if ampm == AM and hour == 12:
        return 0
    return hour


def to_12_hour(hour: int) -> tuple:
    """Return (hour, "AM"/"PM") for a 24-hour `hour`; 0 maps to 12 AM."""
    display = hour % 12 or 12
    return display, (PM if hour >= 12 else AM)


class ClockTime(NamedTuple):
    """A time as shown on a 12-hour picker."""

    hour: int
    minute: int
    ampm: str

    @classmethod
    def from_time(cls, value: Union[time, datetime]) -> "ClockTime":
        hour, ampm = to_12_hour(value.hour)
        return cls(hour, value.minute, ampm)

    @classmethod
    def from_fields(cls, hour, minute, ampm) -> Optional["ClockTime"]:
        if not is_valid_clock(hour, minute, ampm):
            return None
        return cls(_as_int(hour), _as_int(minute), ampm.strip().upper())

    def to_time(self) -> time:
        return time(to_24_hour(self.hour, self.ampm), self.minute)

    def __str__(self) -> str:
        return f"{self.hour}:{self.minute:02d} {self.ampm}"


def parse_clock(text: str) -> Optional[ClockTime]:
    """Parse "2:30 PM", "9am" or "12:05 am" into a ClockTime, None if invalid."""
    if not text:
        return None
    match = _CLOCK_RE.match(text)
    if not match:
        return None
    hour, minute, ampm = match.groups()
    return ClockTime.from_fields(hour, minute or 0, ampm)


def combine(day: Union[date, datetime], clock: ClockTime) -> datetime:
    """Attach a 12-hour clock time to the date part of `day`."""
    return datetime.combine(as_date(day), clock.to_time())


def as_date(value: Union[date, datetime]) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def entity_date(entity: Entity) -> date:
    if isinstance(entity, Project):
        return entity.date.date()
    return entity.date_time.date()


# -------------------------------
# Persistence
# -------------------------------

# collection attribute -> key in the JSON document
_DOC_KEYS = {"projects": "Projects", "lessons": "Lessons", "home_tasks": "HomeTasks"}
_MODELS = {"projects": Project, "lessons": Lesson, "home_tasks": HomeTask}


def _empty() -> Dict[str, list]:
    return {key: [] for key in _DOC_KEYS}


def _entity_to_serializable(entity: Entity) -> dict:
    # mode="json" turns datetimes into naive ISO strings
    return entity.model_dump(mode="json")


def save_document(path: Path, data: Dict[str, list]) -> None:
    """Write projects, lessons and home tasks to `path` in one go.

    Readers of `path` see either the previous document or the new one,
    never a half-written file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    doc = {doc_key: [_entity_to_serializable(e) for e in data[key]] for key, doc_key in _DOC_KEYS.items()}

    # same filesystem as the target so the move is a rename
    with tempfile.NamedTemporaryFile("w", delete=False, dir=str(path.parent), encoding="utf-8") as tf:
        tf.write(json.dumps(doc, indent=2))
        tmp_path = Path(tf.name)

    shutil.move(str(tmp_path), str(path))


def _lacks_ids(doc: dict) -> bool:
    """True when any stored entity or project task has no `id` yet."""
    for doc_key in _DOC_KEYS.values():
        for item in doc.get(doc_key, []):
            if "id" not in item:
                return True
            if any("id" not in task for task in item.get("tasks", [])):
                return True
    return False


def _backup_path(path: Path) -> Path:
    ts = int(datetime.now().timestamp())
    backup = path.with_name(f"{path.name}.corrupt.{ts}")
    n = 1
    while backup.exists():
        backup = path.with_name(f"{path.name}.corrupt.{ts}.{n}")
        n += 1
    return backup


def load_document(path: Path) -> Dict[str, list]:
    """Load all collections from `path`.

    A missing file gives empty collections. If the document is corrupted the
    file is backed up to `<name>.corrupt.<ts>` and empty collections are
    returned so the app can continue. Entries written without ids get one,
    and the document is saved back so the ids stay the same next time.
    """
    if not path.exists():
        log.debug("No planner file at %s, starting empty", path)
        return _empty()
    try:
        doc = json.loads(path.read_text(encoding="utf-8"))
        data = _empty()
        for key, doc_key in _DOC_KEYS.items():
            model = _MODELS[key]
            data[key] = [model.model_validate(item) for item in doc.get(doc_key, [])]
        migrate = _lacks_ids(doc)
    except (json.JSONDecodeError, UnicodeDecodeError, ValidationError, AttributeError, TypeError) as e:
        backup = _backup_path(path)
        shutil.copy2(path, backup)
        log.warning("Corrupted planner file %s (%s). Backed up to %s and starting fresh.", path, e, backup)
        return _empty()
    except OSError as e:
        log.error("Could not read planner file %s: %s", path, e)
        return _empty()

    if migrate:
        try:
            save_document(path, data)
            log.info("Assigned ids to entries in %s", path)
        except OSError as e:
            log.warning("Could not save assigned ids to %s: %s", path, e)
    return data


# -------------------------------
# Store
# -------------------------------


class DayData(NamedTuple):
    projects: List[Project]
    lessons: List[Lesson]
    home_tasks: List[HomeTask]

    def is_empty(self) -> bool:
        return not (self.projects or self.lessons or self.home_tasks)


class Change(NamedTuple):
    kind: str  # "added", "edited" or "removed"
    entity: Entity


Subscriber = Callable[[Change], None]


class PlannerStore:
    """In-memory collections of Projects, Lessons and HomeTasks backed by a JSON file.

    Every mutation rewrites the whole file before the in-memory collections
    are replaced, then subscribers are notified. The store belongs to the
    thread that created it; mutations from any other thread are rejected.
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path is not None else DATA_FILE
        self._owner = threading.get_ident()
        self._subscribers: List[Subscriber] = []
        self._data: Dict[str, list] = _empty()
        self.load()

    def load(self) -> None:
        self._data = load_document(self.path)
        log.debug(
            "Loaded %d projects, %d lessons, %d home tasks from %s",
            len(self._data["projects"]),
            len(self._data["lessons"]),
            len(self._data["home_tasks"]),
            self.path,
        )

    @property
    def projects(self) -> List[Project]:
        return list(self._data["projects"])

    @property
    def lessons(self) -> List[Lesson]:
        return list(self._data["lessons"])

    @property
    def home_tasks(self) -> List[HomeTask]:
        return list(self._data["home_tasks"])

    def all(self) -> List[Entity]:
        return self.projects + self.lessons + self.home_tasks

    # notifications

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)
        return lambda: self.unsubscribe(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def _notify(self, change: Change) -> None:
        for callback in list(self._subscribers):
            try:
                callback(change)
            except Exception:
                log.exception("Subscriber %r failed on %s", callback, change.kind)

    # mutations

    def add(self, entity: Entity) -> Entity:
        key = _collection_for(entity)
        self._commit(key, self._data[key] + [entity], Change("added", entity))
        return entity

    def edit(self, old: Entity, new: Entity) -> Entity:
        """Replace `old` with `new`, matching by id. The stored entity keeps `old.id`."""
        key = _collection_for(old)
        if _collection_for(new) != key:
            raise TypeError(f"cannot replace {type(old).__name__} with {type(new).__name__}")
        idx = self._index(key, old.id)
        stored = new if new.id == old.id else new.model_copy(update={"id": old.id})
        items = list(self._data[key])
        items[idx] = stored
        self._commit(key, items, Change("edited", stored))
        return stored

    def remove(self, entity: Entity) -> Entity:
        key = _collection_for(entity)
        idx = self._index(key, entity.id)
        items = list(self._data[key])
        removed = items.pop(idx)
        self._commit(key, items, Change("removed", removed))
        return removed

    def set_task_completed(self, project: Project, task_id: str, completed: bool = True) -> Project:
        current = self._data["projects"][self._index("projects", project.id)]
        if not any(t.id == task_id for t in current.tasks):
            raise EntityNotFoundError(f"task {task_id} not found in project {current.name!r}")
        tasks = [t.model_copy(update={"is_completed": completed}) if t.id == task_id else t for t in current.tasks]
        return self.edit(current, current.model_copy(update={"tasks": tasks}))

    def _commit(self, key: str, items: list, change: Change) -> None:
        self._check_thread()
        data = dict(self._data)
        data[key] = items
        try:
            save_document(self.path, data)
        except OSError as e:
            log.error("Failed to write planner file %s: %s", self.path, e)
            raise PersistenceError(f"could not write {self.path}: {e}") from e
        self._data = data
        log.debug("%s %s %s", change.kind, type(change.entity).__name__, change.entity.id)
        self._notify(change)

    def _check_thread(self) -> None:
        if threading.get_ident() != self._owner:
            raise StoreThreadError("planner store mutated from a thread that does not own it")

    def _index(self, key: str, entity_id: str) -> int:
        for i, e in enumerate(self._data[key]):
            if e.id == entity_id:
                return i
        raise EntityNotFoundError(f"no {key.replace('_', ' ')[:-1]} with id {entity_id}")

    # queries

    def get(self, entity_id: str) -> Entity:
        for e in self.all():
            if e.id == entity_id:
                return e
        raise EntityNotFoundError(f"no entry with id {entity_id}")

    def find(self, prefix: str) -> Entity:
        """Look up an entity by a unique id prefix (as printed by the CLI)."""
        matches = [e for e in self.all() if e.id.startswith(prefix)] if prefix else []
        if not matches:
            raise EntityNotFoundError(f"no entry with id starting {prefix!r}")
        if len(matches) > 1:
            raise AmbiguousIdError(f"id prefix {prefix!r} matches {len(matches)} entries")
        return matches[0]

    def query_by_date(self, day: Union[date, datetime]) -> DayData:
        d = as_date(day)
        return DayData(*[[e for e in self._data[key] if entity_date(e) == d] for key in _DOC_KEYS])

    def has_data_for_date(self, day: Union[date, datetime]) -> bool:
        d = as_date(day)
        return any(entity_date(e) == d for key in _DOC_KEYS for e in self._data[key])

    def today(self) -> DayData:
        return self.query_by_date(date.today())


def _collection_for(entity) -> str:
    for key, model in _MODELS.items():
        if isinstance(entity, model):
            return key
    raise TypeError(f"unsupported entry type: {type(entity).__name__}")


def find_task(project: Project, prefix: str) -> TaskData:
    matches = [t for t in project.tasks if t.id.startswith(prefix)] if prefix else []
    if not matches:
        raise EntityNotFoundError(f"no task with id starting {prefix!r} in project {project.name!r}")
    if len(matches) > 1:
        raise AmbiguousIdError(f"id prefix {prefix!r} matches {len(matches)} tasks")
    return matches[0]
