import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pymongo import DESCENDING
from pymongo.database import Database

from ..auth.dependencies import get_current_active_user, require_admin, require_teacher
from ..database import get_db, next_id, to_datetime
from ..schemas.core import (
    AcademicYearCreate,
    AcademicYearOut,
    BranchCreate,
    BranchOut,
    ClassCreate,
    ClassOut,
    ParentCreate,
    ParentOut,
    StudentCreate,
    StudentOut,
    SubjectCreate,
    SubjectOut,
    TeacherCreate,
    TeacherOut,
)
from ..services.records import (
    academic_year_doc_to_out,
    branch_doc_to_out,
    class_in_scope,
    class_doc_to_out,
    get_or_404,
    parent_doc_to_out,
    student_doc_to_out,
    subject_doc_to_out,
    teacher_doc_to_out,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _ensure_user(db: Database, user_id: Optional[int], role: str) -> None:
    if user_id is None:
        return
    user = get_or_404(db, "users", user_id, "User")
    if user.get("role") != role:
        raise HTTPException(status_code=400, detail=f"User is not a {role}")


# Branches


@router.get("/branches", response_model=list[BranchOut])
def list_branches(
    _: dict = Depends(get_current_active_user),
    db: Database = Depends(get_db),
):
    cursor = db["branches"].find({"status": "ACTIVE"}).sort("short_name")
    return [branch_doc_to_out(d) for d in cursor]


@router.post("/branches", response_model=BranchOut, status_code=201)
def create_branch(
    payload: BranchCreate,
    _: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    if db["branches"].find_one({"short_name": payload.short_name}):
        raise HTTPException(status_code=400, detail="Branch with this name exists")
    doc = {"_id": next_id(db, "branches"), **payload.model_dump(), "status": "ACTIVE"}
    db["branches"].insert_one(doc)
    logger.info("Created branch %s", payload.short_name)
    return branch_doc_to_out(doc)


# Academic years


@router.get("/academic-years", response_model=list[AcademicYearOut])
def list_academic_years(
    branch_id: Optional[int] = Query(None, alias="branchId"),
    include_archived: bool = Query(False, alias="includeArchived"),
    _: dict = Depends(get_current_active_user),
    db: Database = Depends(get_db),
):
    # Academic years are school-wide; branchId is accepted so the year selector
    # can sit below the branch selector in a filter chain.
    query = {} if include_archived else {"status": "ACTIVE"}
    cursor = db["academic_years"].find(query).sort("start_date", DESCENDING)
    years = [academic_year_doc_to_out(d) for d in cursor]
    return sorted(years, key=lambda y: not y.is_current)


@router.post("/academic-years", response_model=AcademicYearOut, status_code=201)
def create_academic_year(
    payload: AcademicYearCreate,
    _: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    if payload.is_current:
        db["academic_years"].update_many({}, {"$set": {"is_current": False}})
    doc = {
        "_id": next_id(db, "academic_years"),
        "name": payload.name,
        "start_date": to_datetime(payload.start_date),
        "end_date": to_datetime(payload.end_date),
        "is_current": payload.is_current,
        "status": "ACTIVE",
    }
    db["academic_years"].insert_one(doc)
    return academic_year_doc_to_out(doc)


@router.patch("/academic-years/{year_id}/archive", response_model=AcademicYearOut)
def archive_academic_year(
    year_id: int,
    _: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    get_or_404(db, "academic_years", year_id, "Academic year")
    db["academic_years"].update_one(
        {"_id": year_id}, {"$set": {"status": "ARCHIVED", "is_current": False}}
    )
    logger.info("Archived academic year %s", year_id)
    return academic_year_doc_to_out(db["academic_years"].find_one({"_id": year_id}))


# Classes


@router.get("/classes", response_model=list[ClassOut])
def list_classes(
    branch_id: Optional[int] = Query(None, alias="branchId"),
    academic_year_id: Optional[int] = Query(None, alias="academicYearId"),
    _: dict = Depends(get_current_active_user),
    db: Database = Depends(get_db),
):
    query: dict = {"status": "ACTIVE"}
    if branch_id is not None:
        query["branch_id"] = branch_id
    if academic_year_id is not None:
        query["academic_year_id"] = academic_year_id
    cursor = db["classes"].find(query).sort([("level", 1), ("name", 1)])
    return [class_doc_to_out(d) for d in cursor]


@router.post("/classes", response_model=ClassOut, status_code=201)
def create_class(
    payload: ClassCreate,
    _: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    get_or_404(db, "branches", payload.branch_id, "Branch")
    get_or_404(db, "academic_years", payload.academic_year_id, "Academic year")
    known = db["subjects"].count_documents({"_id": {"$in": payload.subject_ids}})
    if known != len(set(payload.subject_ids)):
        raise HTTPException(status_code=400, detail="Unknown subject in subjectIds")
    doc = {"_id": next_id(db, "classes"), **payload.model_dump(), "status": "ACTIVE"}
    db["classes"].insert_one(doc)
    return class_doc_to_out(doc)


# Subjects


@router.get("/subjects", response_model=list[SubjectOut])
def list_subjects(
    class_id: Optional[int] = Query(None, alias="classId"),
    _: dict = Depends(get_current_active_user),
    db: Database = Depends(get_db),
):
    query: dict = {"status": "ACTIVE"}
    if class_id is not None:
        school_class = get_or_404(db, "classes", class_id, "Class")
        query["_id"] = {"$in": school_class.get("subject_ids", [])}
    return [subject_doc_to_out(d) for d in db["subjects"].find(query).sort("name")]


@router.post("/subjects", response_model=SubjectOut, status_code=201)
def create_subject(
    payload: SubjectCreate,
    _: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    if db["subjects"].find_one({"code": payload.code}):
        raise HTTPException(status_code=400, detail="Subject with this code exists")
    doc = {"_id": next_id(db, "subjects"), **payload.model_dump(), "status": "ACTIVE"}
    db["subjects"].insert_one(doc)
    return subject_doc_to_out(doc)


# People


@router.post("/teachers", response_model=TeacherOut, status_code=201)
def create_teacher(
    payload: TeacherCreate,
    _: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    _ensure_user(db, payload.user_id, "teacher")
    doc = {"_id": next_id(db, "teachers"), **payload.model_dump()}
    db["teachers"].insert_one(doc)
    return teacher_doc_to_out(doc)


@router.get("/teachers", response_model=list[TeacherOut])
def list_teachers(
    _: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    return [teacher_doc_to_out(d) for d in db["teachers"].find()]


@router.post("/students", response_model=StudentOut, status_code=201)
def create_student(
    payload: StudentCreate,
    _: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    if db["students"].find_one({"student_id": payload.student_id}):
        raise HTTPException(status_code=400, detail="Student with this student ID exists")
    _ensure_user(db, payload.user_id, "student")
    class_in_scope(db, payload.class_id, payload.branch_id)
    doc = {"_id": next_id(db, "students"), **payload.model_dump(), "status": "ACTIVE"}
    db["students"].insert_one(doc)
    return student_doc_to_out(doc)


@router.get("/students", response_model=list[StudentOut])
def list_students(
    class_id: Optional[int] = Query(None, alias="classId"),
    _: dict = Depends(require_teacher),
    db: Database = Depends(get_db),
):
    query: dict = {"status": "ACTIVE"}
    if class_id is not None:
        query["class_id"] = class_id
    cursor = db["students"].find(query).sort([("first_name", 1), ("last_name", 1)])
    return [student_doc_to_out(d) for d in cursor]


@router.post("/parents", response_model=ParentOut, status_code=201)
def create_parent(
    payload: ParentCreate,
    _: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    _ensure_user(db, payload.user_id, "parent")
    known = db["students"].count_documents({"_id": {"$in": payload.child_ids}})
    if known != len(set(payload.child_ids)):
        raise HTTPException(status_code=400, detail="Unknown student in childIds")
    doc = {"_id": next_id(db, "parents"), **payload.model_dump()}
    db["parents"].insert_one(doc)
    return parent_doc_to_out(doc)
