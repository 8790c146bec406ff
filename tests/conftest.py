from datetime import date, datetime

import pytest

from planner import HomeTask, Lesson, PlannerStore, Project, TaskData

MAY_1 = date(2024, 5, 1)


@pytest.fixture
def data_file(tmp_path):
    return tmp_path / "planner.json"


@pytest.fixture
def store(data_file):
    return PlannerStore(data_file)


@pytest.fixture
def lesson():
    return Lesson(name="Math", date_time=datetime(2024, 5, 1, 14, 30))


@pytest.fixture
def home_task():
    return HomeTask(name="Read ch. 4", subject_name="History", date_time=datetime(2024, 5, 1, 20, 0), priority="High")


@pytest.fixture
def project():
    task = TaskData(name="Outline", date_time=datetime(2024, 5, 1, 9, 0), priority="Medium")
    return Project(name="Essay", date=datetime(2024, 5, 1), tasks=[task])
