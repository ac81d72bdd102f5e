import pytest

from conftest import login

SCOPE = {"branchId": 1, "academicYearId": 2, "classId": 5, "subjectId": 3}


def post_grade(client, headers, student_id, value, grade_type="DAILY", day="2026-01-10", **extra):
    payload = {
        **SCOPE,
        "studentId": student_id,
        "value": value,
        "type": grade_type,
        "date": day,
        **extra,
    }
    return client.post("/api/grades", json=payload, headers=headers)


@pytest.fixture
def graded(client, teacher_headers):
    post_grade(client, teacher_headers, 21, 95)
    post_grade(client, teacher_headers, 21, 85, "EXAM_MIDTERM", "2026-02-12")
    post_grade(client, teacher_headers, 22, 60)
    return teacher_headers


def test_create_grade_records_teacher(client, teacher_headers):
    response = post_grade(client, teacher_headers, 21, 88, description="Quiz 1")
    assert response.status_code == 201
    body = response.json()
    assert body["teacherId"] == 1
    assert body["date"] == "2026-01-10"
    assert body["description"] == "Quiz 1"


def test_grade_must_belong_to_class(client, teacher_headers):
    response = post_grade(client, teacher_headers, 23, 70)
    assert response.status_code == 400
    assert response.json()["detail"] == "Student is not in this class"


def test_grade_value_is_a_percentage(client, teacher_headers):
    assert post_grade(client, teacher_headers, 21, 101).status_code == 422
    assert post_grade(client, teacher_headers, 21, -1).status_code == 422


def test_statistics_need_the_full_selection(client, teacher_headers):
    params = {k: v for k, v in SCOPE.items() if k != "subjectId"}
    response = client.get("/api/grades/statistics", params=params, headers=teacher_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Branch, academic year, class and subject are required"


def test_statistics(client, graded):
    response = client.get("/api/grades/statistics", params=SCOPE, headers=graded)
    assert response.status_code == 200
    body = response.json()

    alice, bobur = body["studentStats"]
    assert alice["student"]["firstName"] == "Alice"
    assert alice["overallAverage"] == 90
    assert alice["averages"]["daily"] == 95
    assert alice["averages"]["examMidterm"] == 85
    assert alice["badge"]["label"] == "excellent"
    assert bobur["badge"]["text"] == "60%"

    summary = body["classSummary"]
    assert summary["totalStudents"] == 2
    assert summary["classAverage"] == 75
    assert summary["highestPerformer"]["student"]["id"] == 21
    assert summary["lowestPerformer"]["student"]["id"] == 22
    assert summary["gradeDistribution"] == {
        "excellent": 1,
        "good": 1,
        "satisfactory": 1,
        "needsImprovement": 0,
    }


def test_statistics_filters(client, graded):
    daily = client.get(
        "/api/grades/statistics", params={**SCOPE, "gradeType": "DAILY"}, headers=graded
    ).json()
    assert daily["classSummary"]["totalGrades"] == 2

    february = client.get(
        "/api/grades/statistics",
        params={**SCOPE, "startDate": "2026-02-01", "endDate": "2026-02-28"},
        headers=graded,
    ).json()
    assert february["classSummary"]["totalGrades"] == 1
    assert february["studentStats"][1]["overallAverage"] is None
    assert february["studentStats"][1]["badge"]["text"] == "N/A"

    physics = client.get(
        "/api/grades/statistics", params={**SCOPE, "subjectId": 7}, headers=graded
    ).json()
    assert physics["grades"] == []
    assert physics["classSummary"]["classAverage"] is None


def test_update_and_delete_grade(client, teacher_headers):
    grade_id = post_grade(client, teacher_headers, 21, 70).json()["id"]

    updated = client.put(f"/api/grades/{grade_id}", json={"value": 75}, headers=teacher_headers)
    assert updated.json()["value"] == 75
    assert updated.json()["type"] == "DAILY"

    assert client.delete(f"/api/grades/{grade_id}", headers=teacher_headers).status_code == 204
    missing = client.put(f"/api/grades/{grade_id}", json={"value": 80}, headers=teacher_headers)
    assert missing.status_code == 404


@pytest.mark.parametrize("field", ["value", "type", "date"])
def test_update_rejects_null_required_fields(client, teacher_headers, field):
    grade_id = post_grade(client, teacher_headers, 21, 70).json()["id"]

    response = client.put(f"/api/grades/{grade_id}", json={field: None}, headers=teacher_headers)
    assert response.status_code == 422

    stats = client.get("/api/grades/statistics", params=SCOPE, headers=teacher_headers)
    assert stats.status_code == 200
    assert stats.json()["grades"][0]["value"] == 70


def test_update_can_clear_description(client, teacher_headers):
    grade_id = post_grade(client, teacher_headers, 21, 70, description="Quiz").json()["id"]
    response = client.put(
        f"/api/grades/{grade_id}", json={"description": None}, headers=teacher_headers
    )
    assert response.status_code == 200
    assert response.json()["description"] is None


def test_students_cannot_write_grades(client, school):
    headers = login(client, "alice")
    assert post_grade(client, headers, 21, 100).status_code == 403


def test_student_gradebook_visibility(client, graded):
    alice = login(client, "alice")
    own = client.get("/api/student-gradebook", params={"studentId": 21}, headers=alice)
    assert own.status_code == 200
    assert own.json()["subjects"][0]["subjectName"] == "Mathematics"
    assert own.json()["overallAverage"] == 90

    other = client.get("/api/student-gradebook", params={"studentId": 22}, headers=alice)
    assert other.status_code == 403

    parent = login(client, "parent")
    assert client.get("/api/student-gradebook", params={"studentId": 21}, headers=parent).status_code == 200
    assert client.get("/api/student-gradebook", params={"studentId": 22}, headers=parent).status_code == 403

    teacher_view = client.get("/api/student-gradebook", params={"studentId": 22}, headers=graded)
    assert teacher_view.json()["overallAverage"] == 60


def test_grade_scope_must_match_class(client, teacher_headers, db):
    wrong_branch = post_grade(client, teacher_headers, 21, 80, branchId=4)
    assert wrong_branch.status_code == 400
    assert wrong_branch.json()["detail"] == "Class does not belong to this branch and academic year"

    wrong_year = post_grade(client, teacher_headers, 21, 80, academicYearId=6)
    assert wrong_year.status_code == 400
    assert db["grades"].count_documents({}) == 0
