import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pymongo.database import Database

from ..auth.dependencies import get_current_active_user, require_admin
from ..database import get_db, next_id
from ..schemas.core import TimetableCreate, TimetableOut
from ..services.records import class_in_scope, get_or_404, scope_query

logger = logging.getLogger(__name__)

router = APIRouter()

WEEKDAYS = ["MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY", "SUNDAY"]


def timetable_doc_to_out(doc: dict) -> TimetableOut:
    return TimetableOut(id=doc["_id"], **{k: v for k, v in doc.items() if k != "_id"})


def _slot_key(entry: TimetableOut):
    return WEEKDAYS.index(entry.day_of_week), entry.start_time, entry.id


@router.get("/timetables", response_model=list[TimetableOut])
def list_timetables(
    branch_id: Optional[int] = Query(None, alias="branchId"),
    academic_year_id: Optional[int] = Query(None, alias="academicYearId"),
    class_id: Optional[int] = Query(None, alias="classId"),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    _: dict = Depends(get_current_active_user),
    db: Database = Depends(get_db),
):
    """Weekly lessons of one class, ordered by day and start time."""
    if None in (branch_id, academic_year_id, class_id):
        raise HTTPException(
            status_code=400, detail="Branch, academic year and class are required"
        )
    query = scope_query(branch_id, academic_year_id, class_id)
    if is_active is not None:
        query["is_active"] = is_active
    entries = [timetable_doc_to_out(d) for d in db["timetables"].find(query)]
    return sorted(entries, key=_slot_key)


@router.post("/timetables", response_model=TimetableOut, status_code=201)
def create_timetable(
    payload: TimetableCreate,
    _: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    school_class = class_in_scope(
        db, payload.class_id, payload.branch_id, payload.academic_year_id
    )
    if payload.subject_id not in school_class.get("subject_ids", []):
        raise HTTPException(status_code=400, detail="Subject is not taught in this class")
    for teacher_id in payload.teacher_ids:
        get_or_404(db, "teachers", teacher_id, "Teacher")

    clash = db["timetables"].find_one(
        {
            "class_id": payload.class_id,
            "day_of_week": payload.day_of_week,
            "is_active": True,
            "start_time": {"$lt": payload.end_time},
            "end_time": {"$gt": payload.start_time},
        }
    )
    if payload.is_active and clash:
        raise HTTPException(status_code=400, detail="Class already has a lesson at this time")

    doc = {"_id": next_id(db, "timetables"), **payload.model_dump()}
    db["timetables"].insert_one(doc)
    logger.info(
        "Created timetable slot %s for class %s on %s",
        doc["_id"],
        payload.class_id,
        payload.day_of_week,
    )
    return timetable_doc_to_out(doc)
