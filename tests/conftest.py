import os

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

import uuid  # noqa: E402

import pytest  # noqa: E402
from beanie import init_beanie  # noqa: E402
from mongomock_motor import AsyncMongoMockClient  # noqa: E402

from app.models import DOCUMENT_MODELS, Student  # noqa: E402


@pytest.fixture(autouse=True)
async def db():
    client = AsyncMongoMockClient()
    name = f"attendance_test_{uuid.uuid4().hex[:8]}"
    await init_beanie(database=client[name], document_models=DOCUMENT_MODELS)
    yield client[name]


def _student(student_id: str, name: str, father: str = "") -> Student:
    return Student(student_id=student_id, name=name, father=father or f"Father of {name}")


@pytest.fixture
def make_student():
    return _student


@pytest.fixture
def abc_roster():
    # inserted out of name order on purpose
    return [_student("C", "Cid"), _student("A", "Amy"), _student("B", "Bob")]


@pytest.fixture
async def stored_roster(abc_roster):
    for s in abc_roster:
        await s.insert()
    return abc_roster
