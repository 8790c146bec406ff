import json
import threading
from datetime import date, datetime, time

import pytest

from planner import (
    AmbiguousIdError,
    ClockTime,
    EntityNotFoundError,
    HomeTask,
    Lesson,
    PersistenceError,
    PlannerStore,
    Project,
    StoreThreadError,
    TaskData,
    combine,
    find_task,
    is_valid_clock,
    parse_clock,
    to_12_hour,
    to_24_hour,
)


# clock


@pytest.mark.parametrize("ampm", ["AM", "PM"])
def test_clock_round_trip(ampm):
    for hour in range(1, 13):
        for minute in (0, 1, 30, 59):
            t = ClockTime(hour, minute, ampm).to_time()
            assert ClockTime.from_time(t) == ClockTime(hour, minute, ampm)


def test_24_hour_boundaries():
    assert to_24_hour(12, "AM") == 0
    assert to_24_hour(12, "PM") == 12
    assert to_24_hour(1, "PM") == 13
    assert to_24_hour(11, "AM") == 11
    assert to_24_hour(2, "pm") == 14
    assert to_12_hour(0) == (12, "AM")
    assert to_12_hour(12) == (12, "PM")
    assert to_12_hour(23) == (11, "PM")


def test_is_valid_clock_accepts_picker_strings():
    assert is_valid_clock("09", "05", "am")
    assert is_valid_clock(12, 59, "PM")
    assert not is_valid_clock(0, 30, "AM")
    assert not is_valid_clock(13, 0, "PM")
    assert not is_valid_clock(5, 60, "PM")
    assert not is_valid_clock(5, 0, "XM")
    assert not is_valid_clock("", "00", "AM")
    assert not is_valid_clock(None, 0, "AM")


def test_parse_clock():
    assert parse_clock("2:30 PM") == ClockTime(2, 30, "PM")
    assert parse_clock("9am") == ClockTime(9, 0, "AM")
    assert parse_clock(" 12:05 am ") == ClockTime(12, 5, "AM")
    assert parse_clock("14:30") is None
    assert parse_clock("13:00 PM") is None
    assert parse_clock("") is None


def test_combine_discards_time_of_day():
    assert combine(datetime(2024, 5, 1, 23, 59), ClockTime(2, 30, "PM")) == datetime(2024, 5, 1, 14, 30)
    assert str(ClockTime.from_time(time(0, 7))) == "12:07 AM"


# entities


def test_project_completion(project):
    assert project.completed_tasks == 0
    assert project.completion_ratio == 0.0
    project.tasks.append(TaskData(name="Draft", date_time=datetime(2024, 5, 1, 10), priority="High", is_completed=True))
    assert project.completed_tasks == 1
    assert project.completion_ratio == 0.5
    assert Project(name="Empty", date=datetime(2024, 5, 1)).completion_ratio == 0.0


def test_entities_get_distinct_ids():
    a = Lesson(name="A", date_time=datetime(2024, 5, 1, 9))
    b = Lesson(name="A", date_time=datetime(2024, 5, 1, 9))
    assert a.id != b.id


# store


def test_add_then_query(store, lesson, home_task, project):
    store.add(lesson)
    store.add(home_task)
    store.add(project)
    day = store.query_by_date(date(2024, 5, 1))
    assert day.lessons == [lesson]
    assert day.home_tasks == [home_task]
    assert day.projects == [project]
    assert store.has_data_for_date(datetime(2024, 5, 1, 23, 0))


def test_query_excludes_adjacent_days(store):
    for d in (datetime(2024, 4, 30, 23, 59), datetime(2024, 5, 1, 0, 0), datetime(2024, 5, 2, 0, 0)):
        store.add(Lesson(name=d.isoformat(), date_time=d))
    day = store.query_by_date(date(2024, 5, 1))
    assert [l.date_time for l in day.lessons] == [datetime(2024, 5, 1, 0, 0)]
    assert not store.has_data_for_date(date(2024, 5, 3))
    assert store.query_by_date(date(2024, 5, 3)).is_empty()


def test_remove(store, lesson):
    store.add(lesson)
    store.remove(lesson)
    assert lesson not in store.query_by_date(lesson.date_time).lessons
    assert not store.has_data_for_date(lesson.date_time)


def test_edit_keeps_id_and_position(store, lesson):
    other = Lesson(name="Physics", date_time=datetime(2024, 5, 1, 8))
    store.add(lesson)
    store.add(other)
    stored = store.edit(lesson, Lesson(name="Algebra", date_time=datetime(2024, 5, 1, 9, 15)))
    assert stored.id == lesson.id
    assert [l.name for l in store.lessons] == ["Algebra", "Physics"]


def test_edit_and_remove_survive_reload(data_file, lesson):
    PlannerStore(data_file).add(lesson)
    reloaded = PlannerStore(data_file)
    copy = reloaded.lessons[0]
    assert copy is not lesson
    reloaded.edit(lesson, Lesson(name="Math II", date_time=lesson.date_time))
    assert PlannerStore(data_file).lessons[0].name == "Math II"
    reloaded.remove(lesson)
    assert PlannerStore(data_file).lessons == []


def test_missing_entity_raises(store, lesson):
    with pytest.raises(EntityNotFoundError):
        store.remove(lesson)
    with pytest.raises(EntityNotFoundError):
        store.edit(lesson, lesson)


def test_edit_rejects_type_change(store, lesson, home_task):
    store.add(lesson)
    with pytest.raises(TypeError):
        store.edit(lesson, home_task)


def test_add_rejects_unknown_type(store):
    with pytest.raises(TypeError):
        store.add("not an entry")


def test_document_layout(store, data_file, lesson, home_task, project):
    lesson.is_expanded = True
    store.add(lesson)
    store.add(home_task)
    store.add(project)
    doc = json.loads(data_file.read_text())
    assert set(doc) == {"Projects", "Lessons", "HomeTasks"}
    assert doc["Lessons"][0]["date_time"] == "2024-05-01T14:30:00"
    assert "is_expanded" not in doc["Lessons"][0]
    assert doc["Projects"][0]["tasks"][0]["name"] == "Outline"
    assert doc["HomeTasks"][0]["subject_name"] == "History"


def test_load_assigns_missing_ids(data_file):
    data_file.write_text(json.dumps({"Lessons": [{"name": "Art", "date_time": "2024-05-01T10:00:00"}]}))
    store = PlannerStore(data_file)
    assert store.lessons[0].name == "Art"
    assert store.lessons[0].id
    assert store.projects == [] and store.home_tasks == []
    assert PlannerStore(data_file).lessons[0].id == store.lessons[0].id
    assert json.loads(data_file.read_text())["Lessons"][0]["id"] == store.lessons[0].id


def test_load_keeps_task_ids_stable(data_file):
    doc = {
        "Projects": [
            {
                "id": "p1",
                "name": "Essay",
                "date": "2024-05-01T00:00:00",
                "tasks": [{"name": "Outline", "date_time": "2024-05-01T09:00:00", "priority": "Low"}],
            }
        ]
    }
    data_file.write_text(json.dumps(doc))
    first = PlannerStore(data_file).projects[0].tasks[0].id
    assert PlannerStore(data_file).projects[0].tasks[0].id == first
    assert PlannerStore(data_file).get("p1").name == "Essay"


def test_corrupt_file_is_backed_up(data_file):
    data_file.write_text("{not json")
    store = PlannerStore(data_file)
    assert store.all() == []
    backups = list(data_file.parent.glob("planner.json.corrupt.*"))
    assert len(backups) == 1
    assert backups[0].read_text() == "{not json"


def test_undecodable_file_is_backed_up(data_file):
    data_file.write_bytes(b"\xff\xfe\x00garbage")
    store = PlannerStore(data_file)
    assert store.all() == []
    backups = list(data_file.parent.glob("planner.json.corrupt.*"))
    assert [b.read_bytes() for b in backups] == [b"\xff\xfe\x00garbage"]


def test_repeated_corrupt_loads_keep_every_backup(data_file):
    data_file.write_text("{first")
    PlannerStore(data_file)
    data_file.write_text("{second")
    PlannerStore(data_file)
    backups = sorted(b.read_text() for b in data_file.parent.glob("planner.json.corrupt.*"))
    assert backups == ["{first", "{second"]


def test_invalid_entries_reset_store(data_file):
    data_file.write_text(json.dumps({"Lessons": [{"name": "", "date_time": "yesterday"}]}))
    assert PlannerStore(data_file).all() == []


def test_write_failure_leaves_memory_untouched(tmp_path, lesson):
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory")
    store = PlannerStore(blocker / "planner.json")
    with pytest.raises(PersistenceError):
        store.add(lesson)
    assert store.lessons == []


def test_subscribers_see_committed_state(store, lesson):
    seen = []
    unsubscribe = store.subscribe(lambda change: seen.append((change.kind, len(store.lessons))))
    store.add(lesson)
    store.edit(lesson, Lesson(name="Math II", date_time=lesson.date_time))
    unsubscribe()
    store.remove(lesson)
    assert seen == [("added", 1), ("edited", 1)]


def test_failing_subscriber_does_not_block_others(store, lesson):
    seen = []

    def broken(change):
        raise RuntimeError("boom")

    store.subscribe(broken)
    store.subscribe(seen.append)
    store.add(lesson)
    assert [c.kind for c in seen] == ["added"]


def test_mutation_from_other_thread_is_rejected(store, lesson):
    errors = []

    def worker():
        try:
            store.add(lesson)
        except StoreThreadError as e:
            errors.append(e)

    t = threading.Thread(target=worker)
    t.start()
    t.join()
    assert len(errors) == 1
    assert store.lessons == []


def test_set_task_completed(store, project):
    store.add(project)
    task = project.tasks[0]
    updated = store.set_task_completed(project, task.id)
    assert updated.completed_tasks == 1
    assert store.projects[0].tasks[0].is_completed
    store.set_task_completed(project, task.id, False)
    assert store.projects[0].completed_tasks == 0
    with pytest.raises(EntityNotFoundError):
        store.set_task_completed(project, "missing")


def test_find_by_prefix(store, lesson, home_task):
    lesson.id = "aaaa1111"
    home_task.id = "aaaa2222"
    store.add(lesson)
    store.add(home_task)
    assert store.find("aaaa1") is lesson
    assert store.get("aaaa2222") is home_task
    with pytest.raises(AmbiguousIdError):
        store.find("aaaa")
    with pytest.raises(EntityNotFoundError):
        store.find("zzz")
    with pytest.raises(EntityNotFoundError):
        store.get("aaaa")


def test_find_task(project):
    task = project.tasks[0]
    assert find_task(project, task.id[:6]) is task
    with pytest.raises(EntityNotFoundError):
        find_task(project, "nope")


def test_today(store):
    now = datetime.now()
    store.add(HomeTask(name="Now", date_time=now, priority="Low"))
    assert [t.name for t in store.today().home_tasks] == ["Now"]
