"""
Grade banding and the aggregations behind the gradebook, exam and
attendance reports.

Every function here is pure: it takes records already loaded from the
database and returns response records, so the routes stay thin and the
numbers can be tested without a server.
"""

import math
from collections import defaultdict
from typing import Iterable, Optional, Sequence

from ..schemas.core import (
    AttendanceOut,
    AttendanceSummary,
    ClassSummary,
    ExamDifficultyRank,
    ExamGradebook,
    ExamInsights,
    ExamOut,
    ExamStatistics,
    ExamWithStatistics,
    GradeBand,
    GradebookStatistics,
    GradeDistribution,
    GradeOut,
    PerformanceTrends,
    Performer,
    StudentAttendanceStats,
    StudentExamPerformance,
    StudentExamResult,
    StudentGradebook,
    StudentGradeStats,
    StudentRef,
    SubjectAverage,
    TrendPoint,
    TypeAverages,
)

# (lower bound, label, color), checked top-down.
BADGE_BANDS = (
    (90, "excellent", "bg-green-100 text-green-800"),
    (80, "good", "bg-blue-100 text-blue-800"),
    (70, "fair", "bg-yellow-100 text-yellow-800"),
    (None, "low", "bg-red-100 text-red-800"),
)
NOT_AVAILABLE = GradeBand(label="n/a", color="bg-gray-100 text-gray-600", text="N/A")

RECENT_TREND_SIZE = 5
PERFORMER_LIST_SIZE = 5


def round_half_up(value: float, digits: int = 0) -> float:
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def percent(part: int, total: int) -> int:
    if total <= 0:
        return 0
    return int(round_half_up(part * 100 / total))


def average(values: Sequence[float]) -> Optional[float]:
    if not values:
        return None
    return round_half_up(sum(values) / len(values), 2)


def _format_value(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def grade_badge(value: Optional[float]) -> GradeBand:
    """Badge for a percentage. ``None`` maps to N/A; every number maps to one band."""
    if value is None:
        return NOT_AVAILABLE
    for lower, label, color in BADGE_BANDS:
        if lower is None or value >= lower:
            return GradeBand(label=label, color=color, text=f"{_format_value(value)}%")
    raise AssertionError("unreachable")


def grade_distribution(values: Iterable[float]) -> GradeDistribution:
    distribution = GradeDistribution()
    for value in values:
        if value >= 90:
            distribution.excellent += 1
        elif value >= 70:
            distribution.good += 1
        elif value >= 50:
            distribution.satisfactory += 1
        else:
            distribution.needs_improvement += 1
    return distribution


def difficulty(average_score: Optional[float]) -> str:
    if average_score is None:
        return "UNKNOWN"
    if average_score >= 70:
        return "EASY"
    if average_score >= 50:
        return "MODERATE"
    return "DIFFICULT"


def result_status(marks_obtained: float, passing_marks: int) -> str:
    return "PASS" if marks_obtained >= passing_marks else "FAIL"


def trend(values: Sequence[float]) -> str:
    """Compare the latest value with the earliest one; ``values`` is oldest first."""
    if len(values) < 2:
        return "INSUFFICIENT_DATA"
    if values[-1] > values[0]:
        return "IMPROVING"
    if values[-1] < values[0]:
        return "DECLINING"
    return "STABLE"


# Grades


def _type_averages(grades: Sequence[GradeOut]) -> TypeAverages:
    by_type: dict[str, list[float]] = defaultdict(list)
    for grade in grades:
        by_type[grade.type].append(grade.value)
    return TypeAverages(**{t.lower(): average(v) for t, v in by_type.items()})


def student_grade_stats(student: StudentRef, grades: Sequence[GradeOut]) -> StudentGradeStats:
    ordered = sorted(grades, key=lambda g: (g.date, g.id))
    overall = average([g.value for g in ordered])
    return StudentGradeStats(
        student=student,
        total_grades=len(ordered),
        averages=_type_averages(ordered),
        overall_average=overall,
        badge=grade_badge(overall),
        grades=ordered,
        recent_trend=[
            TrendPoint(date=g.date, value=g.value, type=g.type)
            for g in ordered[-RECENT_TREND_SIZE:]
        ],
    )


def grade_statistics(
    students: Sequence[StudentRef], grades: Sequence[GradeOut]
) -> GradebookStatistics:
    by_student: dict[int, list[GradeOut]] = defaultdict(list)
    for grade in grades:
        by_student[grade.student_id].append(grade)

    stats = [student_grade_stats(s, by_student.get(s.id, [])) for s in students]
    graded = [s for s in stats if s.overall_average is not None]
    ranked = sorted(graded, key=lambda s: s.overall_average, reverse=True)

    summary = ClassSummary(
        total_students=len(students),
        total_grades=len(grades),
        class_average=average([s.overall_average for s in graded]),
        highest_performer=ranked[0] if ranked else None,
        lowest_performer=ranked[-1] if ranked else None,
        grade_distribution=grade_distribution(g.value for g in grades),
    )
    return GradebookStatistics(student_stats=stats, class_summary=summary, grades=list(grades))


def student_gradebook(
    student: StudentRef, grades: Sequence[GradeOut], subject_names: dict[int, str]
) -> StudentGradebook:
    by_subject: dict[int, list[float]] = defaultdict(list)
    for grade in grades:
        by_subject[grade.subject_id].append(grade.value)

    subjects = []
    for subject_id, values in sorted(by_subject.items()):
        subject_average = average(values)
        subjects.append(
            SubjectAverage(
                subject_id=subject_id,
                subject_name=subject_names.get(subject_id, ""),
                average=subject_average,
                total_count=len(values),
                badge=grade_badge(subject_average),
            )
        )
    overall = average([g.value for g in grades])
    return StudentGradebook(
        student=student,
        subjects=subjects,
        overall_average=overall,
        badge=grade_badge(overall),
        distribution=grade_distribution(g.value for g in grades),
        grades=sorted(grades, key=lambda g: (g.date, g.id), reverse=True),
    )


# Exams


def exam_statistics(exam: ExamOut) -> ExamStatistics:
    results = exam.exam_results
    # A zero mark is treated as "not sat" for score aggregates.
    valid = sorted(
        (r for r in results if r.marks_obtained > 0),
        key=lambda r: r.marks_obtained,
        reverse=True,
    )
    marks = [r.marks_obtained for r in valid]
    pass_count = sum(1 for r in results if r.status == "PASS")
    fail_count = sum(1 for r in results if r.status == "FAIL")
    submissions = pass_count + fail_count

    def performer(result):
        return Performer(
            student=result.student, marks_obtained=result.marks_obtained, status=result.status
        )

    return ExamStatistics(
        total_students=len(results),
        submissions_count=submissions,
        average_score=average(marks) or 0,
        highest_score=max(marks) if marks else 0,
        lowest_score=min(marks) if marks else 0,
        pass_count=pass_count,
        fail_count=fail_count,
        pass_percentage=percent(pass_count, submissions),
        fail_percentage=percent(fail_count, submissions),
        top_performers=[performer(r) for r in valid[:PERFORMER_LIST_SIZE]],
        bottom_performers=[performer(r) for r in reversed(valid[-PERFORMER_LIST_SIZE:])],
    )


def student_exam_performance(
    student: StudentRef, exams: Sequence[ExamOut]
) -> StudentExamPerformance:
    """Performance of one student over ``exams``, which must be oldest first."""
    exam_results = []
    for exam in exams:
        result = next((r for r in exam.exam_results if r.student_id == student.id), None)
        exam_results.append(
            StudentExamResult(
                exam_id=exam.id,
                exam_name=exam.name,
                exam_date=exam.date,
                exam_full_marks=exam.full_marks,
                marks_obtained=result.marks_obtained if result else 0,
                status=result.status if result else "NOT_ATTEMPTED",
                feedback=(result.feedback or "") if result else "",
            )
        )

    valid = [r.marks_obtained for r in exam_results if r.marks_obtained > 0]
    pass_count = sum(1 for r in exam_results if r.status == "PASS")
    fail_count = sum(1 for r in exam_results if r.status == "FAIL")
    attempted = pass_count + fail_count

    consistency = "MIXED"
    if attempted >= 3 and pass_count / attempted >= 0.8:
        consistency = "CONSISTENT_PASS"
    elif attempted >= 3 and fail_count / attempted >= 0.8:
        consistency = "CONSISTENT_FAIL"

    return StudentExamPerformance(
        student=student,
        exam_results=exam_results,
        average_performance=average(valid) or 0,
        total_exams_attempted=attempted,
        pass_count=pass_count,
        fail_count=fail_count,
        consistent_performer=consistency,
        trend=trend(valid),
    )


def exam_gradebook(exams: Sequence[ExamOut], students: Sequence[StudentRef]) -> ExamGradebook:
    chronological = sorted(exams, key=lambda e: (e.date, e.start_time or "", e.id))
    with_stats = [
        ExamWithStatistics(**exam.model_dump(), statistics=exam_statistics(exam))
        for exam in sorted(chronological, key=lambda e: e.date, reverse=True)
    ]
    performance = [student_exam_performance(s, chronological) for s in students]

    averages = [e.statistics.average_score for e in with_stats]
    overall = average(averages)
    trends = None
    if len(with_stats) >= 2:
        trends = PerformanceTrends(
            improving=sum(1 for p in performance if p.trend == "IMPROVING"),
            declining=sum(1 for p in performance if p.trend == "DECLINING"),
            stable=sum(1 for p in performance if p.trend == "STABLE"),
        )

    insights = ExamInsights(
        total_exams=len(with_stats),
        total_students=len(students),
        overall_class_average=overall or 0,
        subject_difficulty=difficulty(overall),
        performance_trends=trends,
        at_risk_students=[p for p in performance if p.consistent_performer == "CONSISTENT_FAIL"],
        high_performers=[p for p in performance if p.consistent_performer == "CONSISTENT_PASS"],
        exam_difficulty_ranking=[
            ExamDifficultyRank(
                exam_name=e.name,
                average_score=e.statistics.average_score,
                difficulty=difficulty(e.statistics.average_score),
            )
            for e in sorted(with_stats, key=lambda e: e.statistics.average_score)
        ],
    )
    return ExamGradebook(exams=with_stats, student_performance=performance, insights=insights)


# Attendance


def _status_counts(records: Iterable[AttendanceOut]) -> dict[str, int]:
    counts = {"PRESENT": 0, "ABSENT": 0, "LATE": 0, "EXCUSED": 0}
    for record in records:
        counts[record.status] += 1
    return counts


def attendance_summary(records: Sequence[AttendanceOut]) -> AttendanceSummary:
    counts = _status_counts(records)
    total = len(records)
    return AttendanceSummary(
        total_records=total,
        present_count=counts["PRESENT"],
        absent_count=counts["ABSENT"],
        late_count=counts["LATE"],
        excused_count=counts["EXCUSED"],
        attendance_rate=percent(counts["PRESENT"], total),
        absenteeism_rate=percent(counts["ABSENT"], total),
    )


def student_attendance_stats(
    students: Sequence[StudentRef], records: Sequence[AttendanceOut]
) -> list[StudentAttendanceStats]:
    by_student: dict[int, list[AttendanceOut]] = defaultdict(list)
    for record in records:
        by_student[record.student_id].append(record)

    stats = []
    for student in students:
        own = by_student.get(student.id, [])
        counts = _status_counts(own)
        stats.append(
            StudentAttendanceStats(
                student=student,
                total_records=len(own),
                present_count=counts["PRESENT"],
                absent_count=counts["ABSENT"],
                late_count=counts["LATE"],
                excused_count=counts["EXCUSED"],
                attendance_rate=percent(counts["PRESENT"], len(own)),
            )
        )
    return stats
