import logging
from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pymongo.database import Database

from ..auth.dependencies import require_roles, require_teacher, teacher_id_for
from ..database import get_db, next_id, to_date, to_datetime, utcnow
from ..schemas.core import (
    HomeworkCreate,
    HomeworkOut,
    HomeworkReport,
    HomeworkStatistics,
    SubmissionCreate,
    SubmissionGrade,
    SubmissionOut,
)
from ..services.exports import HOMEWORK_HEADERS, export_response, homework_rows
from ..services.records import (
    class_in_scope,
    get_or_404,
    scope_query,
    submission_doc_to_out,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def display_status(doc: dict, now: datetime) -> str:
    if doc["status"] == "DRAFT":
        return "draft"
    if doc["status"] == "ARCHIVED":
        return "archived"
    if doc["due_date"] < now:
        return "overdue"
    return "active"


def _homework_doc_to_out(db: Database, doc: dict, now: datetime) -> HomeworkOut:
    submissions = db["homework_submissions"]
    return HomeworkOut(
        id=doc["_id"],
        title=doc["title"],
        description=doc["description"],
        instructions=doc.get("instructions"),
        start_date=to_date(doc["start_date"]),
        due_date=doc["due_date"],
        total_marks=doc.get("total_marks"),
        passing_marks=doc.get("passing_marks"),
        branch_id=doc["branch_id"],
        academic_year_id=doc["academic_year_id"],
        class_id=doc["class_id"],
        subject_id=doc["subject_id"],
        teacher_id=doc.get("teacher_id"),
        status=doc["status"],
        display_status=display_status(doc, now),
        submission_count=submissions.count_documents({"homework_id": doc["_id"]}),
        graded_count=submissions.count_documents({"homework_id": doc["_id"], "status": "GRADED"}),
    )


def _find_homework(
    db: Database,
    branch_id: Optional[int],
    academic_year_id: Optional[int],
    class_id: Optional[int],
    subject_id: Optional[int],
) -> list[HomeworkOut]:
    if class_id is None or subject_id is None:
        raise HTTPException(status_code=400, detail="Class ID and Subject ID are required")
    query = scope_query(branch_id, academic_year_id, class_id, subject_id)
    now = utcnow()
    cursor = db["homework"].find(query).sort("due_date", -1)
    return [_homework_doc_to_out(db, d, now) for d in cursor]


@router.post("/homework", response_model=HomeworkOut, status_code=201)
def create_homework(
    payload: HomeworkCreate,
    current_user: dict = Depends(require_teacher),
    db: Database = Depends(get_db),
):
    class_in_scope(db, payload.class_id, payload.branch_id, payload.academic_year_id)
    get_or_404(db, "subjects", payload.subject_id, "Subject")
    if payload.due_date.date() < payload.start_date:
        raise HTTPException(status_code=400, detail="Due date must not be before start date")
    if (
        payload.total_marks is not None
        and payload.passing_marks is not None
        and payload.passing_marks > payload.total_marks
    ):
        raise HTTPException(status_code=400, detail="Passing marks exceed total marks")

    doc = {
        "_id": next_id(db, "homework"),
        **payload.model_dump(),
        "start_date": to_datetime(payload.start_date),
        "teacher_id": teacher_id_for(db, current_user),
    }
    db["homework"].insert_one(doc)
    logger.info("Created homework %s (%s)", doc["_id"], payload.title)
    return _homework_doc_to_out(db, doc, utcnow())


@router.get("/homework", response_model=HomeworkReport)
def list_homework(
    branch_id: Optional[int] = Query(None, alias="branchId"),
    academic_year_id: Optional[int] = Query(None, alias="academicYearId"),
    class_id: Optional[int] = Query(None, alias="classId"),
    subject_id: Optional[int] = Query(None, alias="subjectId"),
    _: dict = Depends(require_teacher),
    db: Database = Depends(get_db),
):
    homework = _find_homework(db, branch_id, academic_year_id, class_id, subject_id)
    statistics = HomeworkStatistics(
        total_homework=len(homework),
        active_homework=sum(1 for h in homework if h.display_status == "active"),
        draft_homework=sum(1 for h in homework if h.display_status == "draft"),
        overdue_homework=sum(1 for h in homework if h.display_status == "overdue"),
    )
    return HomeworkReport(homework=homework, statistics=statistics)


@router.get("/homework/export")
def export_homework(
    branch_id: Optional[int] = Query(None, alias="branchId"),
    academic_year_id: Optional[int] = Query(None, alias="academicYearId"),
    class_id: Optional[int] = Query(None, alias="classId"),
    subject_id: Optional[int] = Query(None, alias="subjectId"),
    fmt: Literal["csv", "xlsx"] = Query("csv", alias="format"),
    _: dict = Depends(require_teacher),
    db: Database = Depends(get_db),
):
    homework = _find_homework(db, branch_id, academic_year_id, class_id, subject_id)
    return export_response("homework-report", "summary", HOMEWORK_HEADERS, homework_rows(homework), fmt)


@router.post(
    "/homework/{homework_id}/submissions", response_model=SubmissionOut, status_code=201
)
def submit_homework(
    homework_id: int,
    payload: SubmissionCreate,
    current_user: dict = Depends(require_roles("student")),
    db: Database = Depends(get_db),
):
    homework = get_or_404(db, "homework", homework_id, "Homework")
    student = db["students"].find_one({"user_id": current_user["_id"]})
    if student is None:
        raise HTTPException(status_code=404, detail="Student not found")
    if student["class_id"] != homework["class_id"] or homework["status"] != "ACTIVE":
        raise HTTPException(status_code=403, detail="Homework not assigned to this student")

    existing = db["homework_submissions"].find_one(
        {"homework_id": homework_id, "student_id": student["_id"]}
    )
    if existing and existing["status"] == "GRADED":
        raise HTTPException(status_code=400, detail="Submission already graded")

    now = utcnow()
    fields = {
        "homework_id": homework_id,
        "student_id": student["_id"],
        "submitted_at": now,
        "content": payload.content,
        "status": "LATE" if now > homework["due_date"] else "SUBMITTED",
        "grade": None,
        "feedback": None,
    }
    if existing:
        db["homework_submissions"].update_one({"_id": existing["_id"]}, {"$set": fields})
        doc = {"_id": existing["_id"], **fields}
    else:
        doc = {"_id": next_id(db, "homework_submissions"), **fields}
        db["homework_submissions"].insert_one(doc)
    return submission_doc_to_out(doc)


@router.get("/homework/{homework_id}/submissions", response_model=list[SubmissionOut])
def list_submissions(
    homework_id: int,
    _: dict = Depends(require_teacher),
    db: Database = Depends(get_db),
):
    get_or_404(db, "homework", homework_id, "Homework")
    cursor = db["homework_submissions"].find({"homework_id": homework_id}).sort("submitted_at", 1)
    return [submission_doc_to_out(d) for d in cursor]


@router.patch("/homework/submissions/{submission_id}/grade", response_model=SubmissionOut)
def grade_submission(
    submission_id: int,
    payload: SubmissionGrade,
    _: dict = Depends(require_teacher),
    db: Database = Depends(get_db),
):
    submission = get_or_404(db, "homework_submissions", submission_id, "Submission")
    homework = get_or_404(db, "homework", submission["homework_id"], "Homework")
    total_marks = homework.get("total_marks")
    if total_marks is not None and payload.grade > total_marks:
        raise HTTPException(status_code=400, detail="Grade exceeds total marks")

    db["homework_submissions"].update_one(
        {"_id": submission_id},
        {"$set": {"grade": payload.grade, "feedback": payload.feedback, "status": "GRADED"}},
    )
    return submission_doc_to_out(db["homework_submissions"].find_one({"_id": submission_id}))
