"""Conversions between stored documents and wire records, plus shared lookups."""

from datetime import date

from fastapi import HTTPException
from pymongo.database import Database

from ..database import date_range_query, to_date
from ..schemas.core import (
    AcademicYearOut,
    AttendanceOut,
    BranchOut,
    ClassOut,
    ExamOut,
    ExamResultOut,
    GradeOut,
    ParentOut,
    StudentOut,
    StudentRef,
    SubjectOut,
    SubmissionOut,
    TeacherOut,
)


def get_or_404(db: Database, collection: str, doc_id: int, label: str) -> dict:
    doc = db[collection].find_one({"_id": doc_id})
    if doc is None:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return doc


def scope_query(
    branch_id: int | None = None,
    academic_year_id: int | None = None,
    class_id: int | None = None,
    subject_id: int | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> dict:
    """Mongo filter for the common branch/year/class/subject/date query params."""
    query: dict = {}
    for field, value in (
        ("branch_id", branch_id),
        ("academic_year_id", academic_year_id),
        ("class_id", class_id),
        ("subject_id", subject_id),
    ):
        if value is not None:
            query[field] = value
    dates = date_range_query(start_date, end_date)
    if dates:
        query["date"] = dates
    return query


def branch_doc_to_out(doc: dict) -> BranchOut:
    return BranchOut(
        id=doc["_id"],
        short_name=doc["short_name"],
        legal_name=doc.get("legal_name"),
        address=doc.get("address"),
        status=doc.get("status", "ACTIVE"),
    )


def academic_year_doc_to_out(doc: dict) -> AcademicYearOut:
    return AcademicYearOut(
        id=doc["_id"],
        name=doc["name"],
        start_date=to_date(doc["start_date"]),
        end_date=to_date(doc["end_date"]),
        is_current=doc.get("is_current", False),
        status=doc.get("status", "ACTIVE"),
    )


def class_doc_to_out(doc: dict) -> ClassOut:
    return ClassOut(
        id=doc["_id"],
        name=doc["name"],
        level=doc["level"],
        capacity=doc.get("capacity"),
        branch_id=doc["branch_id"],
        academic_year_id=doc["academic_year_id"],
        subject_ids=doc.get("subject_ids", []),
        status=doc.get("status", "ACTIVE"),
    )


def subject_doc_to_out(doc: dict) -> SubjectOut:
    return SubjectOut(
        id=doc["_id"], name=doc["name"], code=doc["code"], status=doc.get("status", "ACTIVE")
    )


def teacher_doc_to_out(doc: dict) -> TeacherOut:
    return TeacherOut(
        id=doc["_id"],
        user_id=doc.get("user_id"),
        first_name=doc["first_name"],
        last_name=doc["last_name"],
        teacher_id=doc["teacher_id"],
        branch_id=doc.get("branch_id"),
    )


def student_doc_to_out(doc: dict) -> StudentOut:
    return StudentOut(
        id=doc["_id"],
        user_id=doc.get("user_id"),
        first_name=doc["first_name"],
        last_name=doc["last_name"],
        student_id=doc["student_id"],
        branch_id=doc["branch_id"],
        class_id=doc["class_id"],
        status=doc.get("status", "ACTIVE"),
    )


def student_doc_to_ref(doc: dict) -> StudentRef:
    return StudentRef(
        id=doc["_id"],
        first_name=doc["first_name"],
        last_name=doc["last_name"],
        student_id=doc["student_id"],
    )


def parent_doc_to_out(doc: dict) -> ParentOut:
    return ParentOut(
        id=doc["_id"],
        user_id=doc.get("user_id"),
        first_name=doc["first_name"],
        last_name=doc["last_name"],
        child_ids=doc.get("child_ids", []),
    )


def grade_doc_to_out(doc: dict) -> GradeOut:
    return GradeOut(
        id=doc["_id"],
        value=doc["value"],
        type=doc["type"],
        date=to_date(doc["date"]),
        description=doc.get("description"),
        branch_id=doc["branch_id"],
        academic_year_id=doc["academic_year_id"],
        class_id=doc["class_id"],
        subject_id=doc["subject_id"],
        student_id=doc["student_id"],
        teacher_id=doc.get("teacher_id"),
    )


def exam_doc_to_out(doc: dict, students: dict[int, StudentRef] | None = None) -> ExamOut:
    students = students or {}
    return ExamOut(
        id=doc["_id"],
        name=doc["name"],
        date=to_date(doc["date"]),
        start_time=doc.get("start_time"),
        end_time=doc.get("end_time"),
        room_number=doc.get("room_number"),
        full_marks=doc["full_marks"],
        passing_marks=doc["passing_marks"],
        status=doc.get("status", "SCHEDULED"),
        branch_id=doc["branch_id"],
        academic_year_id=doc["academic_year_id"],
        class_id=doc["class_id"],
        subject_id=doc["subject_id"],
        teacher_id=doc.get("teacher_id"),
        archived=doc.get("archived", False),
        exam_results=[
            ExamResultOut(
                student_id=r["student_id"],
                student=students.get(r["student_id"]),
                marks_obtained=r["marks_obtained"],
                status=r["status"],
                feedback=r.get("feedback"),
            )
            for r in doc.get("exam_results", [])
        ],
    )


def attendance_doc_to_out(doc: dict) -> AttendanceOut:
    return AttendanceOut(
        id=doc["_id"],
        date=to_date(doc["date"]),
        status=doc["status"],
        notes=doc.get("notes"),
        branch_id=doc["branch_id"],
        academic_year_id=doc["academic_year_id"],
        class_id=doc["class_id"],
        subject_id=doc.get("subject_id"),
        student_id=doc["student_id"],
        teacher_id=doc.get("teacher_id"),
    )


def submission_doc_to_out(doc: dict) -> SubmissionOut:
    return SubmissionOut(
        id=doc["_id"],
        homework_id=doc["homework_id"],
        student_id=doc["student_id"],
        submitted_at=doc["submitted_at"],
        content=doc["content"],
        status=doc["status"],
        grade=doc.get("grade"),
        feedback=doc.get("feedback"),
    )


def class_roster(db: Database, class_id: int) -> list[StudentRef]:
    """Active students of a class, ordered by name."""
    cursor = db["students"].find({"class_id": class_id, "status": "ACTIVE"})
    refs = [student_doc_to_ref(d) for d in cursor]
    return sorted(refs, key=lambda s: (s.first_name, s.last_name))


def student_refs(db: Database, ids) -> dict[int, StudentRef]:
    return {d["_id"]: student_doc_to_ref(d) for d in db["students"].find({"_id": {"$in": list(ids)}})}


def class_in_scope(
    db: Database, class_id: int, branch_id: int, academic_year_id: int | None = None
) -> dict:
    """Load a class and check it belongs to the given branch (and academic year)."""
    school_class = get_or_404(db, "classes", class_id, "Class")
    if school_class["branch_id"] != branch_id or (
        academic_year_id is not None and school_class["academic_year_id"] != academic_year_id
    ):
        raise HTTPException(
            status_code=400, detail="Class does not belong to this branch and academic year"
        )
    return school_class
