import datetime as dt
from datetime import date, datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, RootModel, field_validator, model_validator
from pydantic.alias_generators import to_camel


GradeType = Literal[
    "DAILY",
    "WEEKLY",
    "MONTHLY",
    "TERMLY",
    "YEARLY",
    "EXAM_MIDTERM",
    "EXAM_FINAL",
    "EXAM_NATIONAL",
]
ExamStatus = Literal["SCHEDULED", "ONGOING", "COMPLETED", "CANCELLED"]
ResultStatus = Literal["PASS", "FAIL", "NOT_ATTEMPTED"]
AttendanceStatus = Literal["PRESENT", "ABSENT", "LATE", "EXCUSED"]
Trend = Literal["IMPROVING", "DECLINING", "STABLE", "INSUFFICIENT_DATA"]
Consistency = Literal["CONSISTENT_PASS", "CONSISTENT_FAIL", "MIXED"]
Difficulty = Literal["EASY", "MODERATE", "DIFFICULT", "UNKNOWN"]


class ApiModel(BaseModel):
    """Base for wire records: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Catalog


class BranchBase(ApiModel):
    short_name: str
    legal_name: Optional[str] = None
    address: Optional[str] = None


class BranchCreate(BranchBase):
    pass


class BranchOut(BranchBase):
    id: int
    status: str = "ACTIVE"


class AcademicYearBase(ApiModel):
    name: str
    start_date: date
    end_date: date
    is_current: bool = False

    @model_validator(mode="after")
    def check_dates(self):
        if self.start_date > self.end_date:
            raise ValueError("startDate must not be after endDate")
        return self


class AcademicYearCreate(AcademicYearBase):
    pass


class AcademicYearOut(AcademicYearBase):
    id: int
    status: str = "ACTIVE"


class ClassBase(ApiModel):
    name: str
    level: int
    capacity: Optional[int] = None
    branch_id: int
    academic_year_id: int
    subject_ids: List[int] = []


class ClassCreate(ClassBase):
    pass


class ClassOut(ClassBase):
    id: int
    status: str = "ACTIVE"


class SubjectBase(ApiModel):
    name: str
    code: str


class SubjectCreate(SubjectBase):
    pass


class SubjectOut(SubjectBase):
    id: int
    status: str = "ACTIVE"


class TeacherCreate(ApiModel):
    user_id: Optional[int] = None
    first_name: str
    last_name: str
    teacher_id: str
    branch_id: Optional[int] = None


class TeacherOut(TeacherCreate):
    id: int


class StudentCreate(ApiModel):
    user_id: Optional[int] = None
    first_name: str
    last_name: str
    student_id: str
    branch_id: int
    class_id: int


class StudentOut(StudentCreate):
    id: int
    status: str = "ACTIVE"


class ParentCreate(ApiModel):
    user_id: Optional[int] = None
    first_name: str
    last_name: str
    child_ids: List[int] = []


class ParentOut(ParentCreate):
    id: int


class StudentRef(ApiModel):
    id: int
    first_name: str
    last_name: str
    student_id: str


class GradeBand(ApiModel):
    label: str
    color: str
    text: str


# Grades


class GradeBase(ApiModel):
    value: float = Field(ge=0, le=100)
    type: GradeType
    date: dt.date
    description: Optional[str] = None
    branch_id: int
    academic_year_id: int
    class_id: int
    subject_id: int
    student_id: int


class GradeCreate(GradeBase):
    pass


class GradeUpdate(ApiModel):
    value: Optional[float] = Field(default=None, ge=0, le=100)
    type: Optional[GradeType] = None
    date: Optional[dt.date] = None
    description: Optional[str] = None

    @field_validator("value", "type", "date")
    @classmethod
    def not_null(cls, value):
        # Omit a field to keep it; only description can be cleared.
        if value is None:
            raise ValueError("must not be null")
        return value


class GradeOut(GradeBase):
    id: int
    teacher_id: Optional[int] = None


class TypeAverages(ApiModel):
    daily: Optional[float] = None
    weekly: Optional[float] = None
    monthly: Optional[float] = None
    termly: Optional[float] = None
    yearly: Optional[float] = None
    exam_midterm: Optional[float] = None
    exam_final: Optional[float] = None
    exam_national: Optional[float] = None


class TrendPoint(ApiModel):
    date: dt.date
    value: float
    type: GradeType


class StudentGradeStats(ApiModel):
    student: StudentRef
    total_grades: int
    averages: TypeAverages
    overall_average: Optional[float] = None
    badge: GradeBand
    grades: List[GradeOut]
    recent_trend: List[TrendPoint]


class GradeDistribution(ApiModel):
    excellent: int = 0
    good: int = 0
    satisfactory: int = 0
    needs_improvement: int = 0


class ClassSummary(ApiModel):
    total_students: int
    total_grades: int
    class_average: Optional[float] = None
    highest_performer: Optional[StudentGradeStats] = None
    lowest_performer: Optional[StudentGradeStats] = None
    grade_distribution: GradeDistribution


class GradebookStatistics(ApiModel):
    student_stats: List[StudentGradeStats]
    class_summary: ClassSummary
    grades: List[GradeOut]


class SubjectAverage(ApiModel):
    subject_id: int
    subject_name: str
    average: Optional[float] = None
    total_count: int
    badge: GradeBand


class StudentGradebook(ApiModel):
    student: StudentRef
    subjects: List[SubjectAverage]
    overall_average: Optional[float] = None
    badge: GradeBand
    distribution: GradeDistribution
    grades: List[GradeOut]


# Exams


class ExamBase(ApiModel):
    name: str
    date: dt.date
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    room_number: Optional[str] = None
    full_marks: int = Field(gt=0)
    passing_marks: int = Field(ge=0)
    status: ExamStatus = "SCHEDULED"
    branch_id: int
    academic_year_id: int
    class_id: int
    subject_id: int


class ExamCreate(ExamBase):
    @model_validator(mode="after")
    def check_marks(self):
        if self.passing_marks > self.full_marks:
            raise ValueError("passingMarks must not exceed fullMarks")
        return self


class ExamResultIn(ApiModel):
    student_id: int
    marks_obtained: float = Field(ge=0)
    feedback: Optional[str] = None


class ExamResultsUpdate(ApiModel):
    results: List[ExamResultIn]


class ExamResultOut(ApiModel):
    student_id: int
    student: Optional[StudentRef] = None
    marks_obtained: float
    status: ResultStatus
    feedback: Optional[str] = None


class ExamOut(ExamBase):
    id: int
    teacher_id: Optional[int] = None
    archived: bool = False
    exam_results: List[ExamResultOut] = []


class Performer(ApiModel):
    student: Optional[StudentRef] = None
    marks_obtained: float
    status: ResultStatus


class ExamStatistics(ApiModel):
    total_students: int
    submissions_count: int
    average_score: float
    highest_score: float
    lowest_score: float
    pass_count: int
    fail_count: int
    pass_percentage: int
    fail_percentage: int
    top_performers: List[Performer]
    bottom_performers: List[Performer]


class ExamWithStatistics(ExamOut):
    statistics: ExamStatistics


class StudentExamResult(ApiModel):
    exam_id: int
    exam_name: str
    exam_date: date
    exam_full_marks: int
    marks_obtained: float
    status: ResultStatus
    feedback: str = ""


class StudentExamPerformance(ApiModel):
    student: StudentRef
    exam_results: List[StudentExamResult]
    average_performance: float
    total_exams_attempted: int
    pass_count: int
    fail_count: int
    consistent_performer: Consistency
    trend: Trend


class PerformanceTrends(ApiModel):
    improving: int
    declining: int
    stable: int


class ExamDifficultyRank(ApiModel):
    exam_name: str
    average_score: float
    difficulty: Difficulty


class ExamInsights(ApiModel):
    total_exams: int
    total_students: int
    overall_class_average: float
    subject_difficulty: Difficulty
    performance_trends: Optional[PerformanceTrends] = None
    at_risk_students: List[StudentExamPerformance]
    high_performers: List[StudentExamPerformance]
    exam_difficulty_ranking: List[ExamDifficultyRank]


class ExamGradebook(ApiModel):
    exams: List[ExamWithStatistics]
    student_performance: List[StudentExamPerformance]
    insights: ExamInsights


# Attendance


class AttendanceEntry(ApiModel):
    student_id: int
    status: AttendanceStatus
    notes: Optional[str] = None


class AttendanceRegister(ApiModel):
    date: dt.date
    branch_id: int
    academic_year_id: int
    class_id: int
    subject_id: Optional[int] = None
    entries: List[AttendanceEntry]


class AttendanceUpdate(ApiModel):
    status: AttendanceStatus
    notes: Optional[str] = None


class AttendanceOut(ApiModel):
    id: int
    date: dt.date
    status: AttendanceStatus
    notes: Optional[str] = None
    branch_id: int
    academic_year_id: int
    class_id: int
    subject_id: Optional[int] = None
    student_id: int
    teacher_id: Optional[int] = None


class AttendanceSummary(ApiModel):
    total_records: int = 0
    present_count: int = 0
    absent_count: int = 0
    late_count: int = 0
    excused_count: int = 0
    attendance_rate: int = 0
    absenteeism_rate: int = 0


class StudentAttendanceStats(ApiModel):
    student: StudentRef
    total_records: int
    present_count: int
    absent_count: int
    late_count: int
    excused_count: int
    attendance_rate: int


class AttendanceReport(ApiModel):
    records: List[AttendanceOut]
    summary: AttendanceSummary
    student_stats: List[StudentAttendanceStats]


# Homework


class HomeworkBase(ApiModel):
    title: str
    description: str
    instructions: Optional[str] = None
    start_date: date
    due_date: datetime
    total_marks: Optional[int] = Field(default=None, gt=0)
    passing_marks: Optional[int] = Field(default=None, ge=0)
    branch_id: int
    academic_year_id: int
    class_id: int
    subject_id: int

    @field_validator("due_date")
    @classmethod
    def naive_utc(cls, value: datetime) -> datetime:
        # Stored datetimes are naive UTC.
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value


class HomeworkCreate(HomeworkBase):
    status: Literal["ACTIVE", "DRAFT"] = "ACTIVE"


class HomeworkOut(HomeworkBase):
    id: int
    teacher_id: Optional[int] = None
    status: str
    display_status: Literal["active", "overdue", "draft", "archived"]
    submission_count: int = 0
    graded_count: int = 0


class HomeworkStatistics(ApiModel):
    total_homework: int = 0
    active_homework: int = 0
    draft_homework: int = 0
    overdue_homework: int = 0


class HomeworkReport(ApiModel):
    homework: List[HomeworkOut]
    statistics: HomeworkStatistics


class SubmissionCreate(ApiModel):
    content: str


class SubmissionGrade(ApiModel):
    grade: float = Field(ge=0)
    feedback: Optional[str] = None


class SubmissionOut(ApiModel):
    id: int
    homework_id: int
    student_id: int
    submitted_at: datetime
    content: str
    status: Literal["SUBMITTED", "LATE", "GRADED"]
    grade: Optional[float] = None
    feedback: Optional[str] = None


# Timetables

Weekday = Literal["MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY", "SUNDAY"]


class TimetableBase(ApiModel):
    day_of_week: Weekday
    start_time: str = Field(pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    end_time: str = Field(pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    room_number: Optional[str] = None
    building_name: Optional[str] = None
    branch_id: int
    academic_year_id: int
    class_id: int
    subject_id: int
    teacher_ids: List[int] = []
    is_active: bool = True


class TimetableCreate(TimetableBase):
    @model_validator(mode="after")
    def check_times(self):
        # HH:MM strings compare in clock order.
        if self.end_time <= self.start_time:
            raise ValueError("endTime must be after startTime")
        return self


class TimetableOut(TimetableBase):
    id: int


class TimetableWeek(RootModel[List[TimetableOut]]):
    pass
