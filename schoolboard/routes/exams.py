import logging
from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pymongo.database import Database

from ..auth.dependencies import require_teacher, teacher_id_for
from ..database import get_db, next_id, to_datetime
from ..schemas.core import ExamCreate, ExamGradebook, ExamOut, ExamResultsUpdate
from ..services.exports import (
    EXAM_DETAILED_HEADERS,
    EXAM_SUMMARY_HEADERS,
    exam_detailed_rows,
    exam_summary_rows,
    export_response,
)
from ..services.grading import exam_gradebook, result_status
from ..services.records import (
    class_in_scope,
    class_roster,
    exam_doc_to_out,
    get_or_404,
    scope_query,
    student_refs,
    teacher_doc_to_out,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _load_exams(db: Database, query: dict) -> list[ExamOut]:
    docs = list(db["exams"].find(query).sort([("date", -1), ("start_time", 1)]))
    student_ids = {r["student_id"] for d in docs for r in d.get("exam_results", [])}
    students = student_refs(db, student_ids)
    return [exam_doc_to_out(d, students) for d in docs]


def _gradebook_exams(
    db: Database,
    branch_id: Optional[int],
    academic_year_id: Optional[int],
    class_id: Optional[int],
    subject_id: Optional[int],
    start_date: Optional[date],
    end_date: Optional[date],
) -> ExamGradebook:
    if class_id is None or subject_id is None:
        raise HTTPException(status_code=400, detail="Class and Subject are required")
    query = scope_query(branch_id, academic_year_id, class_id, subject_id, start_date, end_date)
    query["status"] = {"$ne": "CANCELLED"}
    query["archived"] = {"$ne": True}
    return exam_gradebook(_load_exams(db, query), class_roster(db, class_id))


@router.get("/exams", response_model=list[ExamOut])
def list_exams(
    branch_id: Optional[int] = Query(None, alias="branchId"),
    academic_year_id: Optional[int] = Query(None, alias="academicYearId"),
    class_id: Optional[int] = Query(None, alias="classId"),
    subject_id: Optional[int] = Query(None, alias="subjectId"),
    include_archived: bool = Query(False, alias="includeArchived"),
    _: dict = Depends(require_teacher),
    db: Database = Depends(get_db),
):
    query = scope_query(branch_id, academic_year_id, class_id, subject_id)
    if not include_archived:
        query["archived"] = {"$ne": True}
    return _load_exams(db, query)


@router.post("/exams", response_model=ExamOut, status_code=201)
def create_exam(
    payload: ExamCreate,
    current_user: dict = Depends(require_teacher),
    db: Database = Depends(get_db),
):
    class_in_scope(db, payload.class_id, payload.branch_id, payload.academic_year_id)
    get_or_404(db, "subjects", payload.subject_id, "Subject")
    doc = {
        "_id": next_id(db, "exams"),
        **payload.model_dump(),
        "date": to_datetime(payload.date),
        "teacher_id": teacher_id_for(db, current_user),
        "archived": False,
        "exam_results": [],
    }
    db["exams"].insert_one(doc)
    logger.info("Created exam %s (%s)", doc["_id"], payload.name)
    return exam_doc_to_out(doc)


@router.put("/exams/{exam_id}/results", response_model=ExamOut)
def replace_exam_results(
    exam_id: int,
    payload: ExamResultsUpdate,
    _: dict = Depends(require_teacher),
    db: Database = Depends(get_db),
):
    exam = get_or_404(db, "exams", exam_id, "Exam")
    seen: set[int] = set()
    results = []
    for entry in payload.results:
        if entry.student_id in seen:
            raise HTTPException(status_code=400, detail="Duplicate result for student")
        seen.add(entry.student_id)
        if entry.marks_obtained > exam["full_marks"]:
            raise HTTPException(status_code=400, detail="Marks exceed full marks")
        results.append(
            {
                "student_id": entry.student_id,
                "marks_obtained": entry.marks_obtained,
                "status": result_status(entry.marks_obtained, exam["passing_marks"]),
                "feedback": entry.feedback,
            }
        )

    enrolled = db["students"].count_documents(
        {"_id": {"$in": list(seen)}, "class_id": exam["class_id"]}
    )
    if enrolled != len(seen):
        raise HTTPException(status_code=400, detail="Student is not in this class")

    db["exams"].update_one({"_id": exam_id}, {"$set": {"exam_results": results}})
    return _load_exams(db, {"_id": exam_id})[0]


@router.patch("/exams/{exam_id}/archive", response_model=ExamOut)
def archive_exam(
    exam_id: int,
    _: dict = Depends(require_teacher),
    db: Database = Depends(get_db),
):
    get_or_404(db, "exams", exam_id, "Exam")
    db["exams"].update_one({"_id": exam_id}, {"$set": {"archived": True}})
    logger.info("Archived exam %s", exam_id)
    return _load_exams(db, {"_id": exam_id})[0]


@router.delete("/exams/{exam_id}", status_code=204)
def delete_exam(
    exam_id: int,
    _: dict = Depends(require_teacher),
    db: Database = Depends(get_db),
):
    get_or_404(db, "exams", exam_id, "Exam")
    db["exams"].delete_one({"_id": exam_id})
    return Response(status_code=204)


@router.get("/gradebook/exams", response_model=ExamGradebook)
def exam_gradebook_view(
    branch_id: Optional[int] = Query(None, alias="branchId"),
    academic_year_id: Optional[int] = Query(None, alias="academicYearId"),
    class_id: Optional[int] = Query(None, alias="classId"),
    subject_id: Optional[int] = Query(None, alias="subjectId"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    _: dict = Depends(require_teacher),
    db: Database = Depends(get_db),
):
    return _gradebook_exams(
        db, branch_id, academic_year_id, class_id, subject_id, start_date, end_date
    )


@router.get("/gradebook/exams/export")
def export_exam_gradebook(
    branch_id: Optional[int] = Query(None, alias="branchId"),
    academic_year_id: Optional[int] = Query(None, alias="academicYearId"),
    class_id: Optional[int] = Query(None, alias="classId"),
    subject_id: Optional[int] = Query(None, alias="subjectId"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    fmt: Literal["csv", "xlsx"] = Query("csv", alias="format"),
    kind: Literal["summary", "detailed"] = Query("summary", alias="type"),
    _: dict = Depends(require_teacher),
    db: Database = Depends(get_db),
):
    gradebook = _gradebook_exams(
        db, branch_id, academic_year_id, class_id, subject_id, start_date, end_date
    )
    teacher_ids = {e.teacher_id for e in gradebook.exams if e.teacher_id is not None}
    teachers = {
        d["_id"]: teacher_doc_to_out(d)
        for d in db["teachers"].find({"_id": {"$in": list(teacher_ids)}})
    }
    if kind == "summary":
        headers, rows = EXAM_SUMMARY_HEADERS, exam_summary_rows(gradebook.exams, teachers)
    else:
        headers, rows = EXAM_DETAILED_HEADERS, exam_detailed_rows(gradebook.exams, teachers)
    return export_response("exam-report", kind, headers, rows, fmt)
