"""Filter chains for the gradebook, exam, attendance, homework and timetable pages."""

from concurrent.futures import Executor
from pathlib import Path
from typing import Optional

from ..schemas.core import (
    AttendanceReport,
    ExamGradebook,
    GradebookStatistics,
    HomeworkReport,
    TimetableWeek,
)
from .api import PortalClient
from .filters import FilterChain, FilterField

BRANCH = FilterField("branchId", "/api/branches", "Branch")
ACADEMIC_YEAR = FilterField("academicYearId", "/api/academic-years", "Academic Year")
CLASS = FilterField("classId", "/api/classes", "Class")
SUBJECT = FilterField("subjectId", "/api/subjects", "Subject")

SUBJECT_CHAIN = (BRANCH, ACADEMIC_YEAR, CLASS, SUBJECT)
CLASS_CHAIN = (BRANCH, ACADEMIC_YEAR, CLASS)


def _chain(client: PortalClient, fields, path, record, executor) -> FilterChain:
    return FilterChain(
        fields,
        client.option_loader(),
        client.dataset_loader(path, record),
        executor=executor,
    )


def gradebook_chain(client: PortalClient, executor: Optional[Executor] = None) -> FilterChain:
    return _chain(client, SUBJECT_CHAIN, "/api/grades/statistics", GradebookStatistics, executor)


def exam_gradebook_chain(client: PortalClient, executor: Optional[Executor] = None) -> FilterChain:
    return _chain(client, SUBJECT_CHAIN, "/api/gradebook/exams", ExamGradebook, executor)


def attendance_chain(client: PortalClient, executor: Optional[Executor] = None) -> FilterChain:
    return _chain(client, CLASS_CHAIN, "/api/attendance", AttendanceReport, executor)


def homework_chain(client: PortalClient, executor: Optional[Executor] = None) -> FilterChain:
    return _chain(client, SUBJECT_CHAIN, "/api/homework", HomeworkReport, executor)


def timetable_chain(client: PortalClient, executor: Optional[Executor] = None) -> FilterChain:
    return _chain(client, CLASS_CHAIN, "/api/timetables", TimetableWeek, executor)


def export_report(
    client: PortalClient, chain: FilterChain, path: str, destination, **extra
) -> Path:
    if not chain.is_complete:
        labels = ", ".join(f.label or f.name for f in chain.fields)
        raise ValueError(f"Select {labels} before exporting")
    params = {**chain.query_params(), **extra}
    return client.download(path, params, destination)


def export_exam_report(
    client: PortalClient,
    chain: FilterChain,
    destination,
    kind: str = "summary",
    fmt: str = "csv",
) -> Path:
    return export_report(
        client, chain, "/api/gradebook/exams/export", destination, format=fmt, type=kind
    )
