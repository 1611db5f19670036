from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from typing import Optional, List, Dict
from datetime import datetime, timezone

from models import (
    AllocationStatus,
    AnnouncementPriority,
    AnnouncementStatus,
    BookingStatus,
    CourseType,
    EquipmentStatus,
    EnrollmentStatus,
    QuizAttemptStatus,
    RoomStatus,
    RoomType,
    TicketStatus,
    UserRole,
)
from transcript import GRADE_POINTS


# Auth Schemas
class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: int
    role: UserRole


class SessionResponse(BaseModel):
    user_id: int
    username: str
    role: UserRole


# User Schemas
class UserBase(BaseModel):
    """Base schema for user with common attributes"""
    username: str = Field(..., min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$", description="Login name")
    email: EmailStr = Field(..., description="User's email address")
    full_name: str = Field(..., min_length=1, max_length=100, description="User's full name")


class StudentRegister(UserBase):
    """Schema for student self-registration"""
    password: str = Field(..., min_length=8, max_length=128)


class UserCreate(StudentRegister):
    """Schema for an administrator creating a user of any role"""
    role: UserRole = Field(default=UserRole.STUDENT)


class UserResponse(UserBase):
    """Schema for user response"""
    id: int
    role: UserRole
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


# Course Schemas
class CourseOptions(BaseModel):
    """Recognised course options; anything else goes in ``extra``"""
    attendance_required: bool = False
    lab_required: bool = False
    online: bool = False
    time_limit_minutes: Optional[int] = Field(None, ge=1)
    extra: Dict[str, str] = Field(default_factory=dict)


class CourseBase(BaseModel):
    """Base schema for course with common attributes"""
    code: str = Field(..., min_length=1, max_length=20, description="Catalog code, e.g. CS101")
    name: str = Field(..., min_length=1, max_length=200, description="Course name")
    description: Optional[str] = Field(None, max_length=1000, description="Course description")
    credits: int = Field(..., ge=1, le=10, description="Number of credits")
    department: Optional[str] = Field(None, max_length=100)
    semester: Optional[str] = Field(None, max_length=50, description="e.g. Fall 2025")
    course_type: CourseType = Field(default=CourseType.CORE)
    max_seats: int = Field(..., ge=0, description="Seat capacity")
    prerequisite_ids: List[int] = Field(default_factory=list, description="Courses that must be completed first")
    options: CourseOptions = Field(default_factory=CourseOptions)


class CourseCreate(CourseBase):
    """Schema for creating a new course"""
    pass


class CourseUpdate(BaseModel):
    """Schema for updating a course (all fields optional)"""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    credits: Optional[int] = Field(None, ge=1, le=10)
    department: Optional[str] = Field(None, max_length=100)
    semester: Optional[str] = Field(None, max_length=50)
    course_type: Optional[CourseType] = None
    max_seats: Optional[int] = Field(None, ge=0)
    prerequisite_ids: Optional[List[int]] = None
    options: Optional[CourseOptions] = None
    is_active: Optional[bool] = None


class CourseResponse(CourseBase):
    """Schema for course response"""
    id: int
    current_seats: int
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# Enrollment Schemas
class EnrollmentCreate(BaseModel):
    """Schema for an enrollment request; students omit student_id"""
    course_id: int = Field(..., description="Course ID")
    student_id: Optional[int] = Field(None, description="Student ID, staff only")


class EnrollmentResponse(BaseModel):
    """Schema for enrollment response"""
    id: int
    student_id: int
    course_id: int
    status: EnrollmentStatus
    grade: Optional[str] = None
    enrollment_date: datetime

    class Config:
        from_attributes = True


class FinalGradeUpdate(BaseModel):
    grade: str = Field(..., max_length=2, description="Letter grade (e.g., A, B+, C)")

    @field_validator("grade")
    @classmethod
    def validate_grade(cls, v: str) -> str:
        v = v.strip().upper()
        if v not in GRADE_POINTS:
            raise ValueError(f"grade must be one of: {', '.join(GRADE_POINTS)}")
        return v


class CreditSummary(BaseModel):
    student_id: int
    enrolled_credits: int
    max_credits: int
    remaining_credits: int


# Coursework Schemas
class AssignmentCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    total_points: int = Field(..., ge=1)
    due_date: Optional[datetime] = None


class AssignmentResponse(AssignmentCreate):
    id: int
    course_id: int

    class Config:
        from_attributes = True


class SubmissionCreate(BaseModel):
    content: Optional[str] = Field(None, max_length=10000)
    student_id: Optional[int] = Field(None, description="Student ID, staff only")


class SubmissionScore(BaseModel):
    score: float = Field(..., ge=0)
    feedback: Optional[str] = Field(None, max_length=2000)


class SubmissionResponse(BaseModel):
    id: int
    assignment_id: int
    student_id: int
    content: Optional[str] = None
    score: Optional[float] = None
    feedback: Optional[str] = None
    submitted_at: datetime
    graded_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class QuizCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    total_points: int = Field(..., ge=1)
    time_limit_minutes: Optional[int] = Field(None, ge=1)
    max_attempts: int = Field(default=1, ge=1)


class QuizResponse(QuizCreate):
    id: int
    course_id: int

    class Config:
        from_attributes = True


class QuizAttemptCreate(BaseModel):
    student_id: int
    score: float = Field(..., ge=0)


class QuizAttemptResponse(BaseModel):
    id: int
    quiz_id: int
    student_id: int
    score: Optional[float] = None
    status: QuizAttemptStatus
    started_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ExamCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    total_points: int = Field(..., ge=1)
    exam_date: Optional[datetime] = None


class ExamResponse(ExamCreate):
    id: int
    course_id: int

    class Config:
        from_attributes = True


class ExamGradeCreate(BaseModel):
    student_id: int
    points_earned: float = Field(..., ge=0)


class ExamGradeResponse(ExamGradeCreate):
    id: int
    exam_id: int
    recorded_at: datetime

    class Config:
        from_attributes = True


# Grading Schemas
class GradeWeightsUpdate(BaseModel):
    assignments_weight: float = Field(..., ge=0, le=100)
    quizzes_weight: float = Field(..., ge=0, le=100)
    exams_weight: float = Field(..., ge=0, le=100)


class GradeWeightsResponse(GradeWeightsUpdate):
    course_id: int

    class Config:
        from_attributes = True


class StudentFinalGradeResponse(BaseModel):
    enrollment_id: int
    student_id: int
    student_name: str
    course_id: int
    calculated_percentage: Optional[float] = None
    calculated_grade: Optional[str] = None
    current_grade: Optional[str] = None
    overridden: bool

    class Config:
        from_attributes = True


class CourseGradeResponse(BaseModel):
    student_id: int
    course_id: int
    percentage: Optional[float] = None
    final_percentage: Optional[float] = None
    letter_grade: Optional[str] = None


# Transcript Schemas
class TranscriptEntryResponse(BaseModel):
    course_code: str
    course_name: str
    credits: int
    final_grade: str
    semester: Optional[str] = None
    grade_points: float

    class Config:
        from_attributes = True


class TranscriptResponse(BaseModel):
    student_id: int
    student_name: str
    entries: List[TranscriptEntryResponse]
    gpa: float
    total_credits: int


# Announcement Schemas
class AnnouncementBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1, max_length=10000)
    target_role: Optional[UserRole] = Field(None, description="Null targets every role")
    priority: AnnouncementPriority = AnnouncementPriority.NORMAL
    status: AnnouncementStatus = AnnouncementStatus.PUBLISHED
    expiry_date: Optional[datetime] = None


class AnnouncementCreate(AnnouncementBase):
    publish_date: Optional[datetime] = None


class AnnouncementUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    content: Optional[str] = Field(None, min_length=1, max_length=10000)
    target_role: Optional[UserRole] = None
    priority: Optional[AnnouncementPriority] = None
    status: Optional[AnnouncementStatus] = None
    expiry_date: Optional[datetime] = None


class AnnouncementResponse(AnnouncementBase):
    id: int
    created_by_id: int
    publish_date: datetime
    created_at: datetime
    is_archived: bool

    class Config:
        from_attributes = True


class UnreadCountResponse(BaseModel):
    unread: int


# Facility Schemas
def _as_naive_utc(v: datetime) -> datetime:
    """Stored times are naive UTC"""
    if v.tzinfo is not None:
        return v.astimezone(timezone.utc).replace(tzinfo=None)
    return v


class RoomBase(BaseModel):
    code: str = Field(..., min_length=1, max_length=20, description="Room code, e.g. B-101")
    name: str = Field(..., min_length=1, max_length=100)
    room_type: RoomType = Field(default=RoomType.CLASSROOM)
    capacity: int = Field(..., ge=1)
    location: Optional[str] = Field(None, max_length=200)
    status: RoomStatus = Field(default=RoomStatus.AVAILABLE)


class RoomCreate(RoomBase):
    pass


class RoomUpdate(BaseModel):
    """Schema for updating a room (all fields optional)"""
    code: Optional[str] = Field(None, min_length=1, max_length=20)
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    room_type: Optional[RoomType] = None
    capacity: Optional[int] = Field(None, ge=1)
    location: Optional[str] = Field(None, max_length=200)
    status: Optional[RoomStatus] = None


class RoomResponse(RoomBase):
    id: int
    created_at: datetime

    class Config:
        from_attributes = True


class RoomAvailability(BaseModel):
    room_id: int
    start_time: datetime
    end_time: datetime
    available: bool


class BookingCreate(BaseModel):
    room_id: int
    start_time: datetime
    end_time: datetime
    purpose: Optional[str] = Field(None, max_length=500)

    @field_validator("start_time", "end_time")
    @classmethod
    def normalise_times(cls, v: datetime) -> datetime:
        return _as_naive_utc(v)

    @model_validator(mode="after")
    def check_interval(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class BookingUpdate(BookingCreate):
    room_id: Optional[int] = Field(None, description="Move to another room")


class BookingResponse(BaseModel):
    id: int
    room_id: int
    user_id: int
    start_time: datetime
    end_time: datetime
    purpose: Optional[str] = None
    status: BookingStatus
    created_at: datetime

    class Config:
        from_attributes = True


class EquipmentCreate(BaseModel):
    equipment_type: str = Field(..., min_length=1, max_length=100, description="e.g. Projector")
    serial_number: Optional[str] = Field(None, max_length=100)
    location: Optional[str] = Field(None, max_length=200)
    notes: Optional[str] = Field(None, max_length=1000)


class EquipmentStatusUpdate(BaseModel):
    status: EquipmentStatus


class EquipmentResponse(EquipmentCreate):
    id: int
    status: EquipmentStatus
    created_at: datetime

    class Config:
        from_attributes = True


class AllocationCreate(BaseModel):
    user_id: Optional[int] = Field(None, description="User receiving the equipment")
    department: Optional[str] = Field(None, min_length=1, max_length=100)
    notes: Optional[str] = Field(None, max_length=1000)


class AllocationResponse(BaseModel):
    id: int
    equipment_id: int
    allocated_to_user_id: Optional[int] = None
    department: Optional[str] = None
    allocated_by_id: int
    allocation_date: datetime
    return_date: Optional[datetime] = None
    notes: Optional[str] = None
    status: AllocationStatus

    class Config:
        from_attributes = True


class TicketCreate(BaseModel):
    room_id: int
    description: str = Field(..., min_length=1, max_length=2000)


class TicketAssign(BaseModel):
    staff_id: int


class TicketStatusUpdate(BaseModel):
    status: TicketStatus


class TicketResponse(BaseModel):
    id: int
    room_id: int
    reporter_id: int
    assigned_staff_id: Optional[int] = None
    description: str
    status: TicketStatus
    created_at: datetime
    resolved_at: Optional[datetime] = None

    class Config:
        from_attributes = True
