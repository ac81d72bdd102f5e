import csv
import io
from datetime import date

import pytest
from openpyxl import load_workbook

SCOPE = {"branchId": 1, "academicYearId": 2, "classId": 5, "subjectId": 3}


def create_exam(client, headers, name, day, **extra):
    payload = {
        **SCOPE,
        "name": name,
        "date": day,
        "fullMarks": 100,
        "passingMarks": 50,
        "roomNumber": "204",
        **extra,
    }
    response = client.post("/api/exams", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def put_results(client, headers, exam_id, marks):
    return client.put(
        f"/api/exams/{exam_id}/results",
        json={"results": [{"studentId": s, "marksObtained": m} for s, m in marks.items()]},
        headers=headers,
    )


@pytest.fixture
def exams(client, teacher_headers):
    first = create_exam(client, teacher_headers, "Midterm", "2026-01-20")
    second = create_exam(client, teacher_headers, "Final", "2026-03-20")
    put_results(client, teacher_headers, first["id"], {21: 90, 22: 40})
    put_results(client, teacher_headers, second["id"], {21: 95, 22: 30})
    return first, second


def test_exam_marks_must_fit(client, teacher_headers):
    payload = {**SCOPE, "name": "Bad", "date": "2026-01-20", "fullMarks": 50, "passingMarks": 60}
    assert client.post("/api/exams", json=payload, headers=teacher_headers).status_code == 422

    exam = create_exam(client, teacher_headers, "Quiz", "2026-01-20")
    too_high = put_results(client, teacher_headers, exam["id"], {21: 101})
    assert too_high.status_code == 400

    wrong_class = put_results(client, teacher_headers, exam["id"], {23: 50})
    assert wrong_class.json()["detail"] == "Student is not in this class"

    duplicate = client.put(
        f"/api/exams/{exam['id']}/results",
        json={"results": [{"studentId": 21, "marksObtained": 10}, {"studentId": 21, "marksObtained": 20}]},
        headers=teacher_headers,
    )
    assert duplicate.status_code == 400


def test_results_get_status(client, teacher_headers):
    exam = create_exam(client, teacher_headers, "Quiz", "2026-01-20")
    response = put_results(client, teacher_headers, exam["id"], {21: 50, 22: 49.5})

    results = {r["studentId"]: r for r in response.json()["examResults"]}
    assert results[21]["status"] == "PASS"
    assert results[22]["status"] == "FAIL"
    assert results[21]["student"]["lastName"] == "Aliyeva"


def test_gradebook_requires_class_and_subject(client, teacher_headers):
    response = client.get("/api/gradebook/exams", params={"classId": 5}, headers=teacher_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Class and Subject are required"


def test_gradebook(client, teacher_headers, exams):
    response = client.get("/api/gradebook/exams", params=SCOPE, headers=teacher_headers)
    assert response.status_code == 200
    body = response.json()

    assert [e["name"] for e in body["exams"]] == ["Final", "Midterm"]
    final = body["exams"][0]["statistics"]
    assert final["averageScore"] == 62.5
    assert final["passPercentage"] == 50
    assert final["topPerformers"][0]["student"]["firstName"] == "Alice"

    performance = {p["student"]["id"]: p for p in body["studentPerformance"]}
    assert performance[21]["trend"] == "IMPROVING"
    assert performance[22]["trend"] == "DECLINING"
    assert [r["examName"] for r in performance[21]["examResults"]] == ["Midterm", "Final"]

    insights = body["insights"]
    assert insights["totalExams"] == 2
    assert insights["overallClassAverage"] == 63.75
    assert insights["subjectDifficulty"] == "MODERATE"
    assert insights["performanceTrends"] == {"improving": 1, "declining": 1, "stable": 0}


def test_gradebook_date_range(client, teacher_headers, exams):
    response = client.get(
        "/api/gradebook/exams",
        params={**SCOPE, "startDate": "2026-01-01", "endDate": "2026-03-31"},
        headers=teacher_headers,
    )
    assert len(response.json()["exams"]) == 2

    january = client.get(
        "/api/gradebook/exams",
        params={**SCOPE, "startDate": "2026-01-01", "endDate": "2026-01-31"},
        headers=teacher_headers,
    ).json()
    assert [e["name"] for e in january["exams"]] == ["Midterm"]
    assert january["insights"]["performanceTrends"] is None


def test_cancelled_and_archived_exams_leave_gradebook(client, teacher_headers, exams):
    first, second = exams
    create_exam(client, teacher_headers, "Called off", "2026-02-01", status="CANCELLED")
    client.patch(f"/api/exams/{first['id']}/archive", headers=teacher_headers)

    gradebook = client.get("/api/gradebook/exams", params=SCOPE, headers=teacher_headers).json()
    assert [e["name"] for e in gradebook["exams"]] == ["Final"]

    listed = client.get("/api/exams", params=SCOPE, headers=teacher_headers).json()
    assert {e["name"] for e in listed} == {"Final", "Called off"}

    everything = client.get(
        "/api/exams", params={**SCOPE, "includeArchived": "true"}, headers=teacher_headers
    ).json()
    assert len(everything) == 3


def test_delete_exam(client, teacher_headers):
    exam = create_exam(client, teacher_headers, "Quiz", "2026-01-20")
    assert client.delete(f"/api/exams/{exam['id']}", headers=teacher_headers).status_code == 204
    assert client.delete(f"/api/exams/{exam['id']}", headers=teacher_headers).status_code == 404


def test_summary_csv_export(client, teacher_headers, exams):
    response = client.get(
        "/api/gradebook/exams/export", params={**SCOPE, "format": "csv"}, headers=teacher_headers
    )
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    stamp = date.today().isoformat()
    assert f'filename="exam-report-summary-{stamp}.csv"' in response.headers["content-disposition"]

    rows = list(csv.reader(io.StringIO(response.text)))
    assert rows[0][:4] == ["Exam Name", "Date", "Teacher", "Room"]
    assert rows[1][:4] == ["Final", "2026-03-20", "Nodira Karimova", "204"]
    assert len(rows) == 3


def test_detailed_xlsx_export(client, teacher_headers, exams):
    response = client.get(
        "/api/gradebook/exams/export",
        params={**SCOPE, "format": "xlsx", "type": "detailed"},
        headers=teacher_headers,
    )
    assert response.status_code == 200

    sheet = load_workbook(io.BytesIO(response.content)).active
    rows = list(sheet.iter_rows(values_only=True))
    assert rows[0][:4] == ("Exam Name", "Date", "Student ID", "Student Name")
    assert len(rows) == 5
    assert ("Final", "2026-03-20", "S-021", "Alice Aliyeva") == rows[1][:4]


def test_export_rejects_unknown_format(client, teacher_headers, exams):
    response = client.get(
        "/api/gradebook/exams/export", params={**SCOPE, "format": "pdf"}, headers=teacher_headers
    )
    assert response.status_code == 422


def test_exam_scope_must_match_class(client, teacher_headers, db):
    payload = {**SCOPE, "academicYearId": 6, "name": "Stray", "date": "2026-01-20",
               "fullMarks": 100, "passingMarks": 50}
    response = client.post("/api/exams", json=payload, headers=teacher_headers)
    assert response.status_code == 400
    assert db["exams"].count_documents({}) == 0
