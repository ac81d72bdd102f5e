import logging
from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pymongo.database import Database

from ..auth.dependencies import require_teacher, teacher_id_for
from ..database import get_db, next_id, to_datetime
from ..schemas.core import (
    AttendanceOut,
    AttendanceRegister,
    AttendanceReport,
    AttendanceStatus,
    AttendanceUpdate,
)
from ..services.exports import ATTENDANCE_HEADERS, attendance_rows, export_response
from ..services.grading import attendance_summary, student_attendance_stats
from ..services.records import (
    attendance_doc_to_out,
    class_in_scope,
    class_roster,
    get_or_404,
    scope_query,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _find_attendance(
    db: Database,
    branch_id: Optional[int],
    academic_year_id: Optional[int],
    class_id: Optional[int],
    subject_id: Optional[int],
    status: Optional[str],
    start_date: Optional[date],
    end_date: Optional[date],
) -> list[AttendanceOut]:
    if None in (branch_id, academic_year_id, class_id):
        raise HTTPException(
            status_code=400, detail="Branch, academic year and class are required"
        )
    query = scope_query(branch_id, academic_year_id, class_id, subject_id, start_date, end_date)
    if status:
        query["status"] = status
    cursor = db["attendance"].find(query).sort([("date", -1), ("student_id", 1)])
    return [attendance_doc_to_out(d) for d in cursor]


@router.post("/attendance", response_model=list[AttendanceOut])
def take_attendance(
    payload: AttendanceRegister,
    current_user: dict = Depends(require_teacher),
    db: Database = Depends(get_db),
):
    """Record a class register for one day; re-submitting overwrites earlier marks."""
    class_in_scope(db, payload.class_id, payload.branch_id, payload.academic_year_id)
    student_ids = [e.student_id for e in payload.entries]
    if len(set(student_ids)) != len(student_ids):
        raise HTTPException(status_code=400, detail="Duplicate entry for student")
    enrolled = db["students"].count_documents(
        {"_id": {"$in": student_ids}, "class_id": payload.class_id}
    )
    if enrolled != len(student_ids):
        raise HTTPException(status_code=400, detail="Student is not in this class")

    teacher_id = teacher_id_for(db, current_user)
    day = to_datetime(payload.date)
    saved = []
    for entry in payload.entries:
        key = {
            "student_id": entry.student_id,
            "class_id": payload.class_id,
            "subject_id": payload.subject_id,
            "date": day,
        }
        existing = db["attendance"].find_one(key)
        fields = {
            "status": entry.status,
            "notes": entry.notes,
            "branch_id": payload.branch_id,
            "academic_year_id": payload.academic_year_id,
            "teacher_id": teacher_id,
        }
        if existing:
            db["attendance"].update_one({"_id": existing["_id"]}, {"$set": fields})
            doc = {**existing, **fields}
        else:
            doc = {"_id": next_id(db, "attendance"), **key, **fields}
            db["attendance"].insert_one(doc)
        saved.append(attendance_doc_to_out(doc))

    logger.info(
        "Saved attendance for class %s on %s (%d students)",
        payload.class_id,
        payload.date,
        len(saved),
    )
    return saved


@router.patch("/attendance/{attendance_id}", response_model=AttendanceOut)
def update_attendance(
    attendance_id: int,
    payload: AttendanceUpdate,
    _: dict = Depends(require_teacher),
    db: Database = Depends(get_db),
):
    get_or_404(db, "attendance", attendance_id, "Attendance record")
    db["attendance"].update_one(
        {"_id": attendance_id}, {"$set": {"status": payload.status, "notes": payload.notes}}
    )
    return attendance_doc_to_out(db["attendance"].find_one({"_id": attendance_id}))


@router.get("/attendance", response_model=AttendanceReport)
def attendance_report(
    branch_id: Optional[int] = Query(None, alias="branchId"),
    academic_year_id: Optional[int] = Query(None, alias="academicYearId"),
    class_id: Optional[int] = Query(None, alias="classId"),
    subject_id: Optional[int] = Query(None, alias="subjectId"),
    status: Optional[AttendanceStatus] = Query(None),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    _: dict = Depends(require_teacher),
    db: Database = Depends(get_db),
):
    records = _find_attendance(
        db, branch_id, academic_year_id, class_id, subject_id, status, start_date, end_date
    )
    return AttendanceReport(
        records=records,
        summary=attendance_summary(records),
        student_stats=student_attendance_stats(class_roster(db, class_id), records),
    )


@router.get("/attendance/export")
def export_attendance(
    branch_id: Optional[int] = Query(None, alias="branchId"),
    academic_year_id: Optional[int] = Query(None, alias="academicYearId"),
    class_id: Optional[int] = Query(None, alias="classId"),
    subject_id: Optional[int] = Query(None, alias="subjectId"),
    status: Optional[AttendanceStatus] = Query(None),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    fmt: Literal["csv", "xlsx"] = Query("csv", alias="format"),
    _: dict = Depends(require_teacher),
    db: Database = Depends(get_db),
):
    records = _find_attendance(
        db, branch_id, academic_year_id, class_id, subject_id, status, start_date, end_date
    )
    students = {s.id: s for s in class_roster(db, class_id)}
    return export_response(
        "attendance-report", "detailed", ATTENDANCE_HEADERS, attendance_rows(records, students), fmt
    )
