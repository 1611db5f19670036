from sqlmodel import SQLModel, Field, Column
from sqlalchemy import JSON, UniqueConstraint
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum


class UserRole(str, Enum):
    STUDENT = "STUDENT"
    PROFESSOR = "PROFESSOR"
    STAFF = "STAFF"
    ADMIN = "ADMIN"


class CourseType(str, Enum):
    CORE = "CORE"
    ELECTIVE = "ELECTIVE"


class EnrollmentStatus(str, Enum):
    ENROLLED = "ENROLLED"
    DROPPED = "DROPPED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class QuizAttemptStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class AnnouncementStatus(str, Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"


class AnnouncementPriority(str, Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"


class User(SQLModel, table=True):
    """User account; students are users with the STUDENT role"""
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(unique=True, index=True, min_length=3, max_length=50)
    email: str = Field(unique=True, index=True)
    full_name: str = Field(min_length=1, max_length=100)
    role: UserRole = Field(default=UserRole.STUDENT, index=True)
    hashed_password: str
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Course(SQLModel, table=True):
    """Course in the catalog with its seat counter"""
    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(unique=True, index=True, min_length=1, max_length=20)
    name: str = Field(index=True, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    credits: int = Field(ge=1, le=10)
    department: Optional[str] = Field(default=None, max_length=100)
    semester: Optional[str] = Field(default=None, max_length=50)
    course_type: CourseType = Field(default=CourseType.CORE)
    max_seats: int = Field(ge=0)
    current_seats: int = Field(default=0, ge=0)
    prerequisite_ids: List[int] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    options: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Enrollment(SQLModel, table=True):
    """Enrollment linking a student to a course"""
    id: Optional[int] = Field(default=None, primary_key=True)
    student_id: int = Field(foreign_key="users.id", index=True)
    course_id: int = Field(foreign_key="course.id", index=True)
    status: EnrollmentStatus = Field(default=EnrollmentStatus.ENROLLED, index=True)
    grade: Optional[str] = Field(default=None, max_length=2)
    enrollment_date: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class CourseGradeWeights(SQLModel, table=True):
    """Percentage split of a course's final grade across categories"""
    course_id: int = Field(foreign_key="course.id", primary_key=True)
    assignments_weight: float = Field(ge=0, le=100)
    quizzes_weight: float = Field(ge=0, le=100)
    exams_weight: float = Field(ge=0, le=100)


class Assignment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    course_id: int = Field(foreign_key="course.id", index=True)
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    total_points: int = Field(ge=1)
    due_date: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class AssignmentSubmission(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("assignment_id", "student_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    assignment_id: int = Field(foreign_key="assignment.id", index=True)
    student_id: int = Field(foreign_key="users.id", index=True)
    content: Optional[str] = Field(default=None, max_length=10000)
    score: Optional[float] = Field(default=None, ge=0)
    feedback: Optional[str] = Field(default=None, max_length=2000)
    submitted_at: datetime = Field(default_factory=datetime.utcnow)
    graded_at: Optional[datetime] = None


class Quiz(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    course_id: int = Field(foreign_key="course.id", index=True)
    title: str = Field(min_length=1, max_length=200)
    total_points: int = Field(ge=1)
    time_limit_minutes: Optional[int] = Field(default=None, ge=1)
    max_attempts: int = Field(default=1, ge=1)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class QuizAttempt(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    quiz_id: int = Field(foreign_key="quiz.id", index=True)
    student_id: int = Field(foreign_key="users.id", index=True)
    score: Optional[float] = Field(default=None, ge=0)
    status: QuizAttemptStatus = Field(default=QuizAttemptStatus.IN_PROGRESS)
    started_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None


class Exam(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    course_id: int = Field(foreign_key="course.id", index=True)
    title: str = Field(min_length=1, max_length=200)
    total_points: int = Field(ge=1)
    exam_date: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class ExamGrade(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("exam_id", "student_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    exam_id: int = Field(foreign_key="exam.id", index=True)
    student_id: int = Field(foreign_key="users.id", index=True)
    points_earned: float = Field(ge=0)
    recorded_at: datetime = Field(default_factory=datetime.utcnow)


class Announcement(SQLModel, table=True):
    """Announcement; a null target_role means everyone"""
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str = Field(min_length=1, max_length=200)
    content: str = Field(min_length=1, max_length=10000)
    target_role: Optional[UserRole] = Field(default=None, index=True)
    status: AnnouncementStatus = Field(default=AnnouncementStatus.PUBLISHED)
    priority: AnnouncementPriority = Field(default=AnnouncementPriority.NORMAL)
    created_by_id: int = Field(foreign_key="users.id")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    publish_date: datetime = Field(default_factory=datetime.utcnow)
    expiry_date: Optional[datetime] = None
    last_modified_at: Optional[datetime] = None
    last_modified_by_id: Optional[int] = Field(default=None, foreign_key="users.id")
    is_active: bool = Field(default=True)
    is_archived: bool = Field(default=False)


class AnnouncementRead(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("announcement_id", "user_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    announcement_id: int = Field(foreign_key="announcement.id", index=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    read_at: datetime = Field(default_factory=datetime.utcnow)


class RoomType(str, Enum):
    CLASSROOM = "CLASSROOM"
    LAB = "LAB"
    LECTURE_HALL = "LECTURE_HALL"
    OFFICE = "OFFICE"
    CONFERENCE = "CONFERENCE"


class RoomStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    OCCUPIED = "OCCUPIED"
    MAINTENANCE = "MAINTENANCE"


class BookingStatus(str, Enum):
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class EquipmentStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    ALLOCATED = "ALLOCATED"
    MAINTENANCE = "MAINTENANCE"
    RETIRED = "RETIRED"


class AllocationStatus(str, Enum):
    ACTIVE = "ACTIVE"
    RETURNED = "RETURNED"


class TicketStatus(str, Enum):
    NEW = "NEW"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"


class Room(SQLModel, table=True):
    """Bookable room; only AVAILABLE rooms accept bookings"""
    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(unique=True, index=True, min_length=1, max_length=20)
    name: str = Field(min_length=1, max_length=100)
    room_type: RoomType = Field(default=RoomType.CLASSROOM)
    capacity: int = Field(ge=1)
    location: Optional[str] = Field(default=None, max_length=200)
    status: RoomStatus = Field(default=RoomStatus.AVAILABLE, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Booking(SQLModel, table=True):
    """Reservation of a room for [start_time, end_time)"""
    id: Optional[int] = Field(default=None, primary_key=True)
    room_id: int = Field(foreign_key="room.id", index=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    start_time: datetime = Field(index=True)
    end_time: datetime
    purpose: Optional[str] = Field(default=None, max_length=500)
    status: BookingStatus = Field(default=BookingStatus.CONFIRMED, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Equipment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    equipment_type: str = Field(index=True, min_length=1, max_length=100)
    serial_number: Optional[str] = Field(default=None, unique=True, max_length=100)
    status: EquipmentStatus = Field(default=EquipmentStatus.AVAILABLE, index=True)
    location: Optional[str] = Field(default=None, max_length=200)
    notes: Optional[str] = Field(default=None, max_length=1000)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class EquipmentAllocation(SQLModel, table=True):
    """Equipment handed to a user or a department until returned"""
    id: Optional[int] = Field(default=None, primary_key=True)
    equipment_id: int = Field(foreign_key="equipment.id", index=True)
    allocated_to_user_id: Optional[int] = Field(default=None, foreign_key="users.id", index=True)
    department: Optional[str] = Field(default=None, max_length=100, index=True)
    allocated_by_id: int = Field(foreign_key="users.id")
    allocation_date: datetime = Field(default_factory=datetime.utcnow)
    return_date: Optional[datetime] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    status: AllocationStatus = Field(default=AllocationStatus.ACTIVE, index=True)


class MaintenanceTicket(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    room_id: int = Field(foreign_key="room.id", index=True)
    reporter_id: int = Field(foreign_key="users.id")
    assigned_staff_id: Optional[int] = Field(default=None, foreign_key="users.id")
    description: str = Field(min_length=1, max_length=2000)
    status: TicketStatus = Field(default=TicketStatus.NEW, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    resolved_at: Optional[datetime] = None
