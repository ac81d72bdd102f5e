import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pymongo.database import Database

from ..auth.dependencies import (
    get_current_active_user,
    require_teacher,
    student_ids_visible_to,
    teacher_id_for,
)
from ..database import get_db, next_id, to_datetime
from ..schemas.core import (
    GradebookStatistics,
    GradeCreate,
    GradeOut,
    GradeType,
    GradeUpdate,
    StudentGradebook,
)
from ..services.grading import grade_statistics, student_gradebook
from ..services.records import (
    class_in_scope,
    class_roster,
    get_or_404,
    grade_doc_to_out,
    scope_query,
    student_doc_to_ref,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _find_grades(db: Database, query: dict) -> list[GradeOut]:
    cursor = db["grades"].find(query).sort([("date", 1), ("_id", 1)])
    return [grade_doc_to_out(d) for d in cursor]


@router.get("/grades", response_model=list[GradeOut])
def list_grades(
    branch_id: Optional[int] = Query(None, alias="branchId"),
    academic_year_id: Optional[int] = Query(None, alias="academicYearId"),
    class_id: Optional[int] = Query(None, alias="classId"),
    subject_id: Optional[int] = Query(None, alias="subjectId"),
    student_id: Optional[int] = Query(None, alias="studentId"),
    grade_type: Optional[GradeType] = Query(None, alias="gradeType"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    _: dict = Depends(require_teacher),
    db: Database = Depends(get_db),
):
    query = scope_query(branch_id, academic_year_id, class_id, subject_id, start_date, end_date)
    if student_id is not None:
        query["student_id"] = student_id
    if grade_type:
        query["type"] = grade_type
    return _find_grades(db, query)


@router.get("/grades/statistics", response_model=GradebookStatistics)
def gradebook_statistics(
    branch_id: Optional[int] = Query(None, alias="branchId"),
    academic_year_id: Optional[int] = Query(None, alias="academicYearId"),
    class_id: Optional[int] = Query(None, alias="classId"),
    subject_id: Optional[int] = Query(None, alias="subjectId"),
    grade_type: Optional[GradeType] = Query(None, alias="gradeType"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    _: dict = Depends(require_teacher),
    db: Database = Depends(get_db),
):
    if None in (branch_id, academic_year_id, class_id, subject_id):
        raise HTTPException(
            status_code=400,
            detail="Branch, academic year, class and subject are required",
        )
    query = scope_query(branch_id, academic_year_id, class_id, subject_id, start_date, end_date)
    if grade_type:
        query["type"] = grade_type
    return grade_statistics(class_roster(db, class_id), _find_grades(db, query))


@router.post("/grades", response_model=GradeOut, status_code=201)
def create_grade(
    payload: GradeCreate,
    current_user: dict = Depends(require_teacher),
    db: Database = Depends(get_db),
):
    class_in_scope(db, payload.class_id, payload.branch_id, payload.academic_year_id)
    student = get_or_404(db, "students", payload.student_id, "Student")
    if student["class_id"] != payload.class_id:
        raise HTTPException(status_code=400, detail="Student is not in this class")
    get_or_404(db, "subjects", payload.subject_id, "Subject")

    doc = {
        "_id": next_id(db, "grades"),
        **payload.model_dump(),
        "date": to_datetime(payload.date),
        "teacher_id": teacher_id_for(db, current_user),
    }
    db["grades"].insert_one(doc)
    logger.info("Recorded %s grade %s for student %s", payload.type, doc["_id"], payload.student_id)
    return grade_doc_to_out(doc)


@router.put("/grades/{grade_id}", response_model=GradeOut)
def update_grade(
    grade_id: int,
    payload: GradeUpdate,
    _: dict = Depends(require_teacher),
    db: Database = Depends(get_db),
):
    get_or_404(db, "grades", grade_id, "Grade")
    changes = payload.model_dump(exclude_unset=True)
    if "date" in changes:
        changes["date"] = to_datetime(changes["date"])
    if changes:
        db["grades"].update_one({"_id": grade_id}, {"$set": changes})
    return grade_doc_to_out(db["grades"].find_one({"_id": grade_id}))


@router.delete("/grades/{grade_id}", status_code=204)
def delete_grade(
    grade_id: int,
    _: dict = Depends(require_teacher),
    db: Database = Depends(get_db),
):
    get_or_404(db, "grades", grade_id, "Grade")
    db["grades"].delete_one({"_id": grade_id})
    logger.info("Deleted grade %s", grade_id)
    return Response(status_code=204)


@router.get("/student-gradebook", response_model=StudentGradebook)
def student_gradebook_view(
    student_id: int = Query(..., alias="studentId"),
    academic_year_id: Optional[int] = Query(None, alias="academicYearId"),
    subject_id: Optional[int] = Query(None, alias="subjectId"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    current_user: dict = Depends(get_current_active_user),
    db: Database = Depends(get_db),
):
    visible = student_ids_visible_to(db, current_user)
    if visible is not None and student_id not in visible:
        raise HTTPException(status_code=403, detail="Access denied")
    student = get_or_404(db, "students", student_id, "Student")

    query = scope_query(
        academic_year_id=academic_year_id,
        subject_id=subject_id,
        start_date=start_date,
        end_date=end_date,
    )
    query["student_id"] = student_id
    grades = _find_grades(db, query)
    subject_names = {
        d["_id"]: d["name"]
        for d in db["subjects"].find({"_id": {"$in": list({g.subject_id for g in grades})}})
    }
    return student_gradebook(student_doc_to_ref(student), grades, subject_names)
