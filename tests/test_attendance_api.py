import csv
import io

import pytest

SCOPE = {"branchId": 1, "academicYearId": 2, "classId": 5}


def register(client, headers, day, entries, subject_id=3):
    payload = {
        **SCOPE,
        "subjectId": subject_id,
        "date": day,
        "entries": [{"studentId": s, "status": status} for s, status in entries.items()],
    }
    return client.post("/api/attendance", json=payload, headers=headers)


@pytest.fixture
def marked(client, teacher_headers):
    register(client, teacher_headers, "2026-01-12", {21: "PRESENT", 22: "ABSENT"})
    register(client, teacher_headers, "2026-01-13", {21: "PRESENT", 22: "LATE"})
    return teacher_headers


def test_register_is_upserted_per_day(client, teacher_headers, db):
    first = register(client, teacher_headers, "2026-01-12", {21: "PRESENT", 22: "ABSENT"})
    assert first.status_code == 200
    assert [r["teacherId"] for r in first.json()] == [1, 1]

    again = register(client, teacher_headers, "2026-01-12", {21: "PRESENT", 22: "EXCUSED"})
    assert again.status_code == 200
    assert db["attendance"].count_documents({}) == 2
    assert db["attendance"].find_one({"student_id": 22})["status"] == "EXCUSED"


def test_register_rejects_other_classes(client, teacher_headers):
    response = register(client, teacher_headers, "2026-01-12", {23: "PRESENT"})
    assert response.status_code == 400

    duplicate = client.post(
        "/api/attendance",
        json={
            **SCOPE,
            "date": "2026-01-12",
            "entries": [{"studentId": 21, "status": "PRESENT"}, {"studentId": 21, "status": "LATE"}],
        },
        headers=teacher_headers,
    )
    assert duplicate.status_code == 400


def test_report_requires_class(client, teacher_headers):
    response = client.get(
        "/api/attendance", params={"branchId": 1, "academicYearId": 2}, headers=teacher_headers
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Branch, academic year and class are required"


def test_report(client, marked):
    body = client.get("/api/attendance", params=SCOPE, headers=marked).json()

    assert body["summary"] == {
        "totalRecords": 4,
        "presentCount": 2,
        "absentCount": 1,
        "lateCount": 1,
        "excusedCount": 0,
        "attendanceRate": 50,
        "absenteeismRate": 25,
    }
    alice, bobur = body["studentStats"]
    assert alice["attendanceRate"] == 100
    assert bobur["lateCount"] == 1
    assert body["records"][0]["date"] == "2026-01-13"


def test_report_filters(client, marked):
    absent = client.get(
        "/api/attendance", params={**SCOPE, "status": "ABSENT"}, headers=marked
    ).json()
    assert [r["studentId"] for r in absent["records"]] == [22]

    one_day = client.get(
        "/api/attendance",
        params={**SCOPE, "startDate": "2026-01-13", "endDate": "2026-01-13"},
        headers=marked,
    ).json()
    assert one_day["summary"]["totalRecords"] == 2


def test_update_record(client, marked, db):
    record_id = db["attendance"].find_one({"student_id": 22, "status": "ABSENT"})["_id"]
    response = client.patch(
        f"/api/attendance/{record_id}",
        json={"status": "EXCUSED", "notes": "Doctor's note"},
        headers=marked,
    )
    assert response.json()["status"] == "EXCUSED"
    assert response.json()["notes"] == "Doctor's note"


def test_export(client, marked):
    response = client.get("/api/attendance/export", params=SCOPE, headers=marked)
    assert response.status_code == 200

    rows = list(csv.reader(io.StringIO(response.text)))
    assert rows[0] == ["Date", "Student ID", "Student Name", "Status", "Notes"]
    assert rows[1] == ["2026-01-12", "S-021", "Alice Aliyeva", "PRESENT", ""]
    assert len(rows) == 5


def test_register_scope_must_match_class(client, teacher_headers, db):
    response = client.post(
        "/api/attendance",
        json={
            **SCOPE,
            "branchId": 4,
            "date": "2026-01-12",
            "entries": [{"studentId": 21, "status": "PRESENT"}],
        },
        headers=teacher_headers,
    )
    assert response.status_code == 400
    assert db["attendance"].count_documents({}) == 0
