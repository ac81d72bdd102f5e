import csv
import io
from datetime import date
from typing import Iterable, List, Sequence

from fastapi import HTTPException, Response
from openpyxl import Workbook
from openpyxl.styles import Font

from ..schemas.core import (
    AttendanceOut,
    ExamWithStatistics,
    HomeworkOut,
    StudentRef,
)
from .grading import round_half_up

CSV_MEDIA_TYPE = "text/csv"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

EXAM_SUMMARY_HEADERS = [
    "Exam Name", "Date", "Teacher", "Room", "Full Marks", "Passing Marks",
    "Total Students", "Average Score", "Highest Score", "Lowest Score",
    "Pass Count", "Fail Count", "Pass %", "Fail %",
]
EXAM_DETAILED_HEADERS = [
    "Exam Name", "Date", "Student ID", "Student Name", "Marks Obtained",
    "Full Marks", "Percentage", "Status", "Teacher", "Room",
]
ATTENDANCE_HEADERS = ["Date", "Student ID", "Student Name", "Status", "Notes"]
HOMEWORK_HEADERS = [
    "Title", "Start Date", "Due Date", "Status", "Total Marks", "Submissions", "Graded",
]


def rows_to_csv(headers: Sequence[str], rows: Iterable[Sequence]) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(headers)
    writer.writerows(rows)
    return buffer.getvalue().encode("utf-8")


def rows_to_workbook(title: str, headers: Sequence[str], rows: Iterable[Sequence]) -> bytes:
    """Write a single-sheet workbook with a bold header row."""
    wb = Workbook()
    ws = wb.active
    ws.title = title[:31]
    for idx, header in enumerate(headers):
        cell = ws.cell(row=1, column=idx + 1)
        cell.value = header
        cell.font = Font(bold=True)

    for row in rows:
        next_row = ws.max_row + 1
        for idx, value in enumerate(row):
            ws.cell(row=next_row, column=idx + 1).value = value

    out_buffer = io.BytesIO()
    wb.save(out_buffer)
    out_buffer.seek(0)
    return out_buffer.getvalue()


def export_response(
    report: str,
    kind: str,
    headers: Sequence[str],
    rows: List[Sequence],
    fmt: str = "csv",
    today: date | None = None,
) -> Response:
    stamp = (today or date.today()).isoformat()
    if fmt == "csv":
        content, media_type = rows_to_csv(headers, rows), CSV_MEDIA_TYPE
    elif fmt == "xlsx":
        content, media_type = rows_to_workbook(f"{report} {kind}", headers, rows), XLSX_MEDIA_TYPE
    else:
        raise HTTPException(status_code=400, detail=f"Unsupported export format: {fmt}")
    filename = f"{report}-{kind}-{stamp}.{fmt}"
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _full_name(person) -> str:
    if person is None:
        return ""
    return f"{person.first_name} {person.last_name}"


def exam_summary_rows(exams: Sequence[ExamWithStatistics], teachers: dict) -> List[list]:
    rows = []
    for exam in exams:
        stats = exam.statistics
        rows.append([
            exam.name,
            exam.date.isoformat(),
            _full_name(teachers.get(exam.teacher_id)),
            exam.room_number or "",
            exam.full_marks,
            exam.passing_marks,
            stats.total_students,
            stats.average_score,
            stats.highest_score,
            stats.lowest_score,
            stats.pass_count,
            stats.fail_count,
            stats.pass_percentage,
            stats.fail_percentage,
        ])
    return rows


def exam_detailed_rows(exams: Sequence[ExamWithStatistics], teachers: dict) -> List[list]:
    rows = []
    for exam in exams:
        teacher = _full_name(teachers.get(exam.teacher_id))
        for result in exam.exam_results:
            rows.append([
                exam.name,
                exam.date.isoformat(),
                result.student.student_id if result.student else result.student_id,
                _full_name(result.student),
                result.marks_obtained,
                exam.full_marks,
                round_half_up(result.marks_obtained * 100 / exam.full_marks, 2),
                result.status,
                teacher,
                exam.room_number or "",
            ])
    return rows


def attendance_rows(records: Sequence[AttendanceOut], students: dict[int, StudentRef]) -> List[list]:
    rows = []
    for record in sorted(records, key=lambda r: (r.date, r.student_id)):
        student = students.get(record.student_id)
        rows.append([
            record.date.isoformat(),
            student.student_id if student else record.student_id,
            _full_name(student),
            record.status,
            record.notes or "",
        ])
    return rows


def homework_rows(homework: Sequence[HomeworkOut]) -> List[list]:
    return [
        [
            hw.title,
            hw.start_date.isoformat(),
            hw.due_date.isoformat(timespec="minutes"),
            hw.display_status,
            hw.total_marks if hw.total_marks is not None else "",
            hw.submission_count,
            hw.graded_count,
        ]
        for hw in homework
    ]
