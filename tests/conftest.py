from datetime import datetime
from types import SimpleNamespace

import mongomock
import pytest
from fastapi.testclient import TestClient

from schoolboard.auth.security import get_password_hash
from schoolboard.database import get_db, next_id
from schoolboard.main import app

PASSWORD = "secret"


def add_user(db, username: str, role: str) -> dict:
    doc = {
        "_id": next_id(db, "users"),
        "username": username,
        "email": f"{username}@example.com",
        "full_name": username.capitalize(),
        "role": role,
        "hashed_password": get_password_hash(PASSWORD),
        "is_active": True,
    }
    db["users"].insert_one(doc)
    return doc


def login(client, username: str, password: str = PASSWORD) -> dict:
    response = client.post("/api/auth/login", data={"username": username, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def db():
    return mongomock.MongoClient()["schoolboard_test"]


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def school(db):
    """Branch 1 / academic year 2 / class 5 (subjects 3 and 7) with two students."""
    db["counters"].insert_many(
        [
            {"_id": name, "seq": 50}
            for name in ("branches", "academic_years", "classes", "subjects", "students", "teachers", "parents")
        ]
    )
    db["branches"].insert_many(
        [
            {"_id": 1, "short_name": "North", "status": "ACTIVE"},
            {"_id": 4, "short_name": "South", "status": "ACTIVE"},
            {"_id": 9, "short_name": "Old Campus", "status": "INACTIVE"},
        ]
    )
    db["academic_years"].insert_many(
        [
            {
                "_id": 2,
                "name": "2025-2026",
                "start_date": datetime(2025, 9, 1),
                "end_date": datetime(2026, 6, 30),
                "is_current": True,
                "status": "ACTIVE",
            },
            {
                "_id": 6,
                "name": "2024-2025",
                "start_date": datetime(2024, 9, 1),
                "end_date": datetime(2025, 6, 30),
                "is_current": False,
                "status": "ARCHIVED",
            },
        ]
    )
    db["subjects"].insert_many(
        [
            {"_id": 3, "name": "Mathematics", "code": "MATH", "status": "ACTIVE"},
            {"_id": 7, "name": "Physics", "code": "PHY", "status": "ACTIVE"},
            {"_id": 8, "name": "Art", "code": "ART", "status": "ACTIVE"},
        ]
    )
    db["classes"].insert_many(
        [
            {"_id": 5, "name": "10A", "level": 10, "branch_id": 1, "academic_year_id": 2,
             "subject_ids": [3, 7], "status": "ACTIVE"},
            {"_id": 11, "name": "9B", "level": 9, "branch_id": 4, "academic_year_id": 2,
             "subject_ids": [8], "status": "ACTIVE"},
        ]
    )

    teacher_user = add_user(db, "teacher", "teacher")
    db["teachers"].insert_one(
        {"_id": 1, "user_id": teacher_user["_id"], "first_name": "Nodira",
         "last_name": "Karimova", "teacher_id": "T-001", "branch_id": 1}
    )

    students = [
        (21, "alice", "Alice", "Aliyeva", 5),
        (22, "bobur", "Bobur", "Rahimov", 5),
        (23, "zarina", "Zarina", "Saidova", 11),
    ]
    for student_id, username, first, last, class_id in students:
        user = add_user(db, username, "student")
        db["students"].insert_one(
            {"_id": student_id, "user_id": user["_id"], "first_name": first, "last_name": last,
             "student_id": f"S-{student_id:03d}", "branch_id": 1 if class_id == 5 else 4,
             "class_id": class_id, "status": "ACTIVE"}
        )

    parent_user = add_user(db, "parent", "parent")
    db["parents"].insert_one(
        {"_id": 31, "user_id": parent_user["_id"], "first_name": "Dilnoza",
         "last_name": "Aliyeva", "child_ids": [21]}
    )
    return SimpleNamespace(branch_id=1, academic_year_id=2, class_id=5, subject_id=3)


@pytest.fixture
def teacher_headers(client, school):
    return login(client, "teacher")


@pytest.fixture
def admin_headers(client):
    return login(client, "admin", "admin")
