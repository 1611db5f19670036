from fastapi import FastAPI, HTTPException, Depends, Query, status, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from sqlmodel import Session, select
from typing import List, Optional
from datetime import datetime
import logging
import sys
from sqlalchemy.exc import SQLAlchemyError, IntegrityError

from config import settings
from database import create_db_and_tables, get_session
from models import (
    Assignment,
    AssignmentSubmission,
    Course,
    Enrollment,
    Exam,
    ExamGrade,
    Quiz,
    QuizAttempt,
    QuizAttemptStatus,
    User,
    UserRole,
    Announcement,
    Booking,
    Equipment,
    EquipmentStatus,
    MaintenanceTicket,
    Room,
    TicketStatus,
)
from schemas import (
    LoginRequest, TokenResponse, SessionResponse,
    StudentRegister, UserCreate, UserResponse,
    CourseCreate, CourseUpdate, CourseResponse,
    EnrollmentCreate, EnrollmentResponse, FinalGradeUpdate, CreditSummary,
    AssignmentCreate, AssignmentResponse, SubmissionCreate, SubmissionScore, SubmissionResponse,
    QuizCreate, QuizResponse, QuizAttemptCreate, QuizAttemptResponse,
    ExamCreate, ExamResponse, ExamGradeCreate, ExamGradeResponse,
    GradeWeightsUpdate, GradeWeightsResponse, StudentFinalGradeResponse, CourseGradeResponse,
    TranscriptEntryResponse, TranscriptResponse,
    AnnouncementCreate, AnnouncementUpdate, AnnouncementResponse, UnreadCountResponse,
    RoomCreate, RoomUpdate, RoomResponse, RoomAvailability,
    BookingCreate, BookingUpdate, BookingResponse,
    EquipmentCreate, EquipmentStatusUpdate, EquipmentResponse, AllocationCreate, AllocationResponse,
    TicketCreate, TicketAssign, TicketStatusUpdate, TicketResponse,
)
from auth import (
    SessionContext,
    authenticate,
    create_access_token,
    ensure_can_act_for,
    get_current_context,
    hash_password,
    require_roles,
)
from errors import (
    BookingConflictError,
    EnrollmentError,
    FacilityError,
    InvalidGradeWeightsError,
    PrerequisitesNotMetError,
    StorageError,
)
import enrollment as enrollment_service
import grading
import transcript as transcript_service
import announcements as announcement_service
import facilities

# Configure logging
log_handlers = [logging.StreamHandler(sys.stdout)]
if settings.LOG_FILE:
    log_handlers.append(logging.FileHandler(settings.LOG_FILE))
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=log_handlers
)
logger = logging.getLogger(__name__)

STAFF_ROLES = (UserRole.STAFF, UserRole.ADMIN)
TEACHING_ROLES = (UserRole.PROFESSOR, UserRole.STAFF, UserRole.ADMIN)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create database tables on startup"""
    try:
        logger.info(f"Starting {settings.APP_TITLE} ({settings.ENV})...")
        create_db_and_tables()
        logger.info("Database tables created successfully")
    except Exception as e:
        logger.error(f"Failed to create database tables: {str(e)}", exc_info=True)
        raise
    yield
    logger.info("Shutting down...")


app = FastAPI(
    title=settings.APP_TITLE,
    description="University administration API: catalog, enrollment, grading, transcripts, announcements and facilities",
    version=settings.APP_VERSION,
    lifespan=lifespan
)


# Global exception handlers
@app.exception_handler(EnrollmentError)
async def enrollment_exception_handler(request: Request, exc: EnrollmentError):
    """Report a rejected enrollment with the rule that rejected it"""
    logger.warning(f"Enrollment rejected ({type(exc).__name__}): {exc.message}")
    content = {"detail": exc.message, "error": type(exc).__name__}
    if isinstance(exc, PrerequisitesNotMetError):
        content["missing_prerequisites"] = exc.missing_codes
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=content)


@app.exception_handler(FacilityError)
async def facility_exception_handler(request: Request, exc: FacilityError):
    logger.warning(f"Facility request rejected ({type(exc).__name__}): {exc.message}")
    content = {"detail": exc.message, "error": type(exc).__name__}
    if isinstance(exc, BookingConflictError):
        content["conflicting_bookings"] = exc.conflicting_ids
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=content)


@app.exception_handler(StorageError)
async def storage_exception_handler(request: Request, exc: StorageError):
    """Handle rolled-back transactions"""
    logger.error(f"Storage error: {str(exc)}", exc_info=exc.__cause__)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "A database error occurred. No changes were saved."}
    )


@app.exception_handler(SQLAlchemyError)
async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError):
    """Handle database-related errors"""
    logger.error(f"Database error: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "A database error occurred. Please try again later."}
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle all uncaught exceptions"""
    logger.error(f"Unexpected error: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "An unexpected error occurred. Please contact support."}
    )


@app.get("/", tags=["Root"])
async def read_root():
    """Root endpoint"""
    logger.info("Root endpoint accessed")
    return {
        "message": f"Welcome to {settings.APP_TITLE}",
        "docs": "/docs",
        "redoc": "/redoc"
    }


@app.get("/health", tags=["Root"])
async def health_check():
    return {"status": "healthy", "version": settings.APP_VERSION}


def get_student_or_404(session: Session, student_id: int) -> User:
    student = session.get(User, student_id)
    if not student or student.role != UserRole.STUDENT:
        logger.warning(f"Student not found: {student_id}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Student not found")
    return student


def get_course_or_404(session: Session, course_id: int) -> Course:
    course = session.get(Course, course_id)
    if not course:
        logger.warning(f"Course not found: {course_id}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Course not found")
    return course


def get_or_404(session: Session, model, item_id: int, label: str):
    item = session.get(model, item_id)
    if not item:
        logger.warning(f"{label} not found: {item_id}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{label} not found")
    return item


def ensure_enrolled(session: Session, student_id: int, course_id: int) -> None:
    if not enrollment_service.is_enrolled(session, student_id, course_id):
        logger.warning(f"Student {student_id} is not enrolled in course {course_id}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Student is not enrolled in this course")


# ============= AUTH ENDPOINTS =============

def _create_user(session: Session, data: UserCreate) -> User:
    existing = session.exec(
        select(User).where((User.username == data.username) | (User.email == data.email))
    ).first()
    if existing:
        logger.warning(f"Attempted to create user with existing username or email: {data.username}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Username or email already registered"
        )

    db_user = User(
        username=data.username,
        email=data.email,
        full_name=data.full_name,
        role=data.role,
        hashed_password=hash_password(data.password),
    )
    session.add(db_user)
    session.commit()
    session.refresh(db_user)
    logger.info(f"User created successfully with ID: {db_user.id} ({db_user.role.value})")
    return db_user


@app.post("/auth/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED, tags=["Auth"])
async def register_student(student: StudentRegister, session: Session = Depends(get_session)):
    """Self-register a student account"""
    if not settings.ENABLE_REGISTRATION:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Registration is disabled")
    try:
        logger.info(f"Registering student: {student.username}")
        return _create_user(session, UserCreate(**student.model_dump(), role=UserRole.STUDENT))
    except HTTPException:
        raise
    except IntegrityError as e:
        logger.error(f"Integrity error registering student: {str(e)}")
        session.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Failed to register. Username or email may already exist."
        )


@app.post("/auth/login", response_model=TokenResponse, tags=["Auth"])
async def login(credentials: LoginRequest, session: Session = Depends(get_session)):
    """Exchange a username and password for a bearer token"""
    user = authenticate(session, credentials.username, credentials.password)
    if not user:
        logger.warning(f"Failed login for username: {credentials.username}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    logger.info(f"User {user.username} logged in")
    return TokenResponse(access_token=create_access_token(user), user_id=user.id, role=user.role)


@app.get("/auth/me", response_model=SessionResponse, tags=["Auth"])
async def read_session(ctx: SessionContext = Depends(get_current_context)):
    """Return the caller's session"""
    return SessionResponse(user_id=ctx.user_id, username=ctx.username, role=ctx.role)


# ============= USER ENDPOINTS =============

@app.post("/users/", response_model=UserResponse, status_code=status.HTTP_201_CREATED, tags=["Users"])
async def create_user(
    user: UserCreate,
    ctx: SessionContext = Depends(require_roles(UserRole.ADMIN)),
    session: Session = Depends(get_session),
):
    """Create a user of any role"""
    try:
        logger.info(f"Admin {ctx.username} creating {user.role.value} user: {user.username}")
        return _create_user(session, user)
    except HTTPException:
        raise
    except IntegrityError as e:
        logger.error(f"Integrity error creating user: {str(e)}")
        session.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Failed to create user. Username or email may already exist."
        )


@app.get("/users/", response_model=List[UserResponse], tags=["Users"])
async def read_users(
    skip: int = 0,
    limit: int = 100,
    role: Optional[UserRole] = None,
    ctx: SessionContext = Depends(require_roles(*STAFF_ROLES)),
    session: Session = Depends(get_session),
):
    """Get users with pagination"""
    logger.info(f"Fetching users with skip={skip}, limit={limit}, role={role}")
    statement = select(User)
    if role is not None:
        statement = statement.where(User.role == role)
    users = session.exec(statement.order_by(User.id).offset(skip).limit(limit)).all()
    logger.info(f"Retrieved {len(users)} users")
    return users


@app.get("/users/{user_id}", response_model=UserResponse, tags=["Users"])
async def read_user(
    user_id: int,
    ctx: SessionContext = Depends(get_current_context),
    session: Session = Depends(get_session),
):
    """Get a specific user by ID"""
    ensure_can_act_for(ctx, user_id)
    return get_or_404(session, User, user_id, "User")


# ============= COURSE ENDPOINTS =============

def _validate_prerequisites(session: Session, prerequisite_ids: List[int], course_id: Optional[int] = None):
    if course_id is not None and course_id in prerequisite_ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="A course cannot be its own prerequisite")
    if not prerequisite_ids:
        return
    found = session.exec(select(Course.id).where(Course.id.in_(prerequisite_ids))).all()
    unknown = sorted(set(prerequisite_ids) - set(found))
    if unknown:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown prerequisite course IDs: {unknown}"
        )
    if course_id is not None and enrollment_service.creates_prerequisite_cycle(session, course_id, prerequisite_ids):
        logger.warning(f"Prerequisites {prerequisite_ids} would make course {course_id} require itself")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Prerequisites would form a cycle back to this course"
        )


@app.post("/courses/", response_model=CourseResponse, status_code=status.HTTP_201_CREATED, tags=["Courses"])
async def create_course(
    course: CourseCreate,
    ctx: SessionContext = Depends(require_roles(*STAFF_ROLES)),
    session: Session = Depends(get_session),
):
    """Create a new course"""
    try:
        logger.info(f"Creating course: {course.code}")
        if session.exec(select(Course).where(Course.code == course.code)).first():
            logger.warning(f"Attempted to create course with existing code: {course.code}")
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Course code already exists")
        _validate_prerequisites(session, course.prerequisite_ids)

        db_course = Course(**course.model_dump(exclude={"prerequisite_ids", "options"}))
        db_course.prerequisite_ids = list(dict.fromkeys(course.prerequisite_ids))
        db_course.options = course.options.model_dump()
        session.add(db_course)
        session.commit()
        session.refresh(db_course)
        logger.info(f"Course created successfully with ID: {db_course.id}")
        return db_course
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating course: {str(e)}", exc_info=True)
        session.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while creating the course"
        )


@app.get("/courses/", response_model=List[CourseResponse], tags=["Courses"])
async def read_courses(
    skip: int = 0,
    limit: int = 100,
    active_only: bool = True,
    department: Optional[str] = None,
    session: Session = Depends(get_session),
):
    """Get the course catalog with pagination"""
    logger.info(f"Fetching courses with skip={skip}, limit={limit}, active_only={active_only}")
    statement = select(Course)
    if active_only:
        statement = statement.where(Course.is_active == True)  # noqa: E712
    if department:
        statement = statement.where(Course.department == department)
    courses = session.exec(statement.order_by(Course.code).offset(skip).limit(limit)).all()
    logger.info(f"Retrieved {len(courses)} courses")
    return courses


@app.get("/courses/{course_id}", response_model=CourseResponse, tags=["Courses"])
async def read_course(course_id: int, session: Session = Depends(get_session)):
    """Get a specific course by ID"""
    logger.info(f"Fetching course with ID: {course_id}")
    return get_course_or_404(session, course_id)


@app.put("/courses/{course_id}", response_model=CourseResponse, tags=["Courses"])
async def update_course(
    course_id: int,
    course_update: CourseUpdate,
    ctx: SessionContext = Depends(require_roles(*STAFF_ROLES)),
    session: Session = Depends(get_session),
):
    """Update a course's information"""
    try:
        logger.info(f"Updating course with ID: {course_id}")
        db_course = get_course_or_404(session, course_id)

        update_data = course_update.model_dump(exclude_unset=True)
        if update_data.get("max_seats") is not None and update_data["max_seats"] < db_course.current_seats:
            logger.warning(f"Refusing to shrink course {course_id} below its {db_course.current_seats} taken seats")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"max_seats cannot be lower than the {db_course.current_seats} seats already taken"
            )
        new_credits = update_data.get("credits")
        if (
            new_credits is not None
            and new_credits != db_course.credits
            and enrollment_service.has_enrolled_students(session, course_id)
        ):
            logger.warning(f"Refusing to change credits of course {course_id} while students are enrolled")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="credits cannot change while students are enrolled"
            )
        if update_data.get("prerequisite_ids") is not None:
            _validate_prerequisites(session, update_data["prerequisite_ids"], course_id)
            update_data["prerequisite_ids"] = list(dict.fromkeys(update_data["prerequisite_ids"]))

        # Update only provided fields
        for key, value in update_data.items():
            if value is None:
                continue
            setattr(db_course, key, value)

        db_course.updated_at = datetime.utcnow()
        session.add(db_course)
        session.commit()
        session.refresh(db_course)

        logger.info(f"Course updated successfully: {db_course.id}")
        return db_course
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating course {course_id}: {str(e)}", exc_info=True)
        session.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while updating the course"
        )


@app.delete("/courses/{course_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Courses"])
async def delete_course(
    course_id: int,
    ctx: SessionContext = Depends(require_roles(*STAFF_ROLES)),
    session: Session = Depends(get_session),
):
    """Delete a course that has never had enrollments"""
    try:
        logger.info(f"Deleting course with ID: {course_id}")
        course = get_course_or_404(session, course_id)

        if session.exec(select(Enrollment.id).where(Enrollment.course_id == course_id)).first():
            logger.warning(f"Course {course_id} has enrollment records, not deleting")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Course has enrollment records; deactivate it instead"
            )

        session.delete(course)
        session.commit()
        logger.info(f"Course deleted successfully: {course_id}")
        return None
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting course {course_id}: {str(e)}", exc_info=True)
        session.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while deleting the course"
        )


@app.get("/courses/{course_id}/enrollments", response_model=List[EnrollmentResponse], tags=["Enrollments"])
async def read_course_enrollments(
    course_id: int,
    enrolled_only: bool = False,
    ctx: SessionContext = Depends(require_roles(*TEACHING_ROLES)),
    session: Session = Depends(get_session),
):
    """Get all enrollments for a specific course"""
    logger.info(f"Fetching enrollments for course: {course_id}")
    get_course_or_404(session, course_id)
    enrollments = enrollment_service.get_course_enrollments(session, course_id, enrolled_only)
    logger.info(f"Retrieved {len(enrollments)} enrollments for course {course_id}")
    return enrollments


# ============= ENROLLMENT ENDPOINTS =============

@app.post("/enrollments/", response_model=EnrollmentResponse, status_code=status.HTTP_201_CREATED, tags=["Enrollments"])
async def create_enrollment(
    enrollment: EnrollmentCreate,
    ctx: SessionContext = Depends(get_current_context),
    session: Session = Depends(get_session),
):
    """Enroll a student in a course"""
    student_id = enrollment.student_id if enrollment.student_id is not None else ctx.user_id
    ensure_can_act_for(ctx, student_id)
    try:
        logger.info(f"Creating enrollment for student {student_id} in course {enrollment.course_id}")
        student = get_student_or_404(session, student_id)
        course = get_course_or_404(session, enrollment.course_id)
        if not course.is_active:
            logger.warning(f"Course {course.code} is not active")
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Course is not open for enrollment")

        db_enrollment = enrollment_service.enroll(session, student, course)
        logger.info(f"Enrollment created successfully with ID: {db_enrollment.id}")
        return db_enrollment
    except (HTTPException, EnrollmentError, StorageError):
        raise
    except Exception as e:
        logger.error(f"Error creating enrollment: {str(e)}", exc_info=True)
        session.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while creating the enrollment"
        )


@app.get("/enrollments/{enrollment_id}", response_model=EnrollmentResponse, tags=["Enrollments"])
async def read_enrollment(
    enrollment_id: int,
    ctx: SessionContext = Depends(get_current_context),
    session: Session = Depends(get_session),
):
    """Get a specific enrollment by ID"""
    logger.info(f"Fetching enrollment with ID: {enrollment_id}")
    db_enrollment = get_or_404(session, Enrollment, enrollment_id, "Enrollment")
    if ctx.role != UserRole.PROFESSOR:
        ensure_can_act_for(ctx, db_enrollment.student_id)
    return db_enrollment


@app.post("/enrollments/{enrollment_id}/drop", response_model=EnrollmentResponse, tags=["Enrollments"])
async def drop_enrollment(
    enrollment_id: int,
    ctx: SessionContext = Depends(get_current_context),
    session: Session = Depends(get_session),
):
    """Drop a course and release its seat"""
    logger.info(f"Dropping enrollment with ID: {enrollment_id}")
    db_enrollment = get_or_404(session, Enrollment, enrollment_id, "Enrollment")
    ensure_can_act_for(ctx, db_enrollment.student_id)

    if not enrollment_service.drop(session, enrollment_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Enrollment is {db_enrollment.status.value} and cannot be dropped"
        )
    return enrollment_service.get_enrollment(session, enrollment_id)


@app.put("/enrollments/{enrollment_id}/grade", response_model=EnrollmentResponse, tags=["Grading"])
async def update_enrollment_grade(
    enrollment_id: int,
    grade_update: FinalGradeUpdate,
    ctx: SessionContext = Depends(require_roles(*TEACHING_ROLES)),
    session: Session = Depends(get_session),
):
    """Record the final letter grade of an enrollment"""
    logger.info(f"Updating grade of enrollment {enrollment_id} to {grade_update.grade}")
    if not grading.update_final_grade(session, enrollment_id, grade_update.grade):
        logger.warning(f"Enrollment not found for grade update with ID: {enrollment_id}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Enrollment not found")
    return enrollment_service.get_enrollment(session, enrollment_id)


@app.get("/students/{student_id}/enrollments", response_model=List[EnrollmentResponse], tags=["Enrollments"])
async def read_student_enrollments(
    student_id: int,
    enrolled_only: bool = False,
    ctx: SessionContext = Depends(get_current_context),
    session: Session = Depends(get_session),
):
    """Get all enrollments for a specific student"""
    ensure_can_act_for(ctx, student_id)
    logger.info(f"Fetching enrollments for student: {student_id}")
    get_student_or_404(session, student_id)
    enrollments = enrollment_service.get_student_enrollments(session, student_id, enrolled_only)
    logger.info(f"Retrieved {len(enrollments)} enrollments for student {student_id}")
    return enrollments


@app.get("/students/{student_id}/credits", response_model=CreditSummary, tags=["Enrollments"])
async def read_student_credits(
    student_id: int,
    ctx: SessionContext = Depends(get_current_context),
    session: Session = Depends(get_session),
):
    """Get the student's current credit load against the cap"""
    ensure_can_act_for(ctx, student_id)
    get_student_or_404(session, student_id)
    enrolled = enrollment_service.get_total_enrolled_credits(session, student_id)
    return CreditSummary(
        student_id=student_id,
        enrolled_credits=enrolled,
        max_credits=enrollment_service.MAX_CREDITS,
        remaining_credits=max(enrollment_service.MAX_CREDITS - enrolled, 0),
    )


# ============= COURSEWORK ENDPOINTS =============

@app.post("/courses/{course_id}/assignments", response_model=AssignmentResponse,
          status_code=status.HTTP_201_CREATED, tags=["Coursework"])
async def create_assignment(
    course_id: int,
    assignment: AssignmentCreate,
    ctx: SessionContext = Depends(require_roles(*TEACHING_ROLES)),
    session: Session = Depends(get_session),
):
    """Create an assignment for a course"""
    get_course_or_404(session, course_id)
    db_assignment = Assignment(course_id=course_id, **assignment.model_dump())
    session.add(db_assignment)
    session.commit()
    session.refresh(db_assignment)
    logger.info(f"Assignment {db_assignment.id} created for course {course_id}")
    return db_assignment


@app.get("/courses/{course_id}/assignments", response_model=List[AssignmentResponse], tags=["Coursework"])
async def read_assignments(
    course_id: int,
    ctx: SessionContext = Depends(get_current_context),
    session: Session = Depends(get_session),
):
    get_course_or_404(session, course_id)
    return session.exec(select(Assignment).where(Assignment.course_id == course_id).order_by(Assignment.id)).all()


@app.post("/assignments/{assignment_id}/submissions", response_model=SubmissionResponse,
          status_code=status.HTTP_201_CREATED, tags=["Coursework"])
async def submit_assignment(
    assignment_id: int,
    submission: SubmissionCreate,
    ctx: SessionContext = Depends(get_current_context),
    session: Session = Depends(get_session),
):
    """Submit (or resubmit, until graded) an assignment"""
    student_id = submission.student_id if submission.student_id is not None else ctx.user_id
    ensure_can_act_for(ctx, student_id)
    assignment = get_or_404(session, Assignment, assignment_id, "Assignment")
    get_student_or_404(session, student_id)

    ensure_enrolled(session, student_id, assignment.course_id)

    db_submission = session.exec(
        select(AssignmentSubmission).where(
            AssignmentSubmission.assignment_id == assignment_id,
            AssignmentSubmission.student_id == student_id,
        )
    ).first()
    if db_submission and db_submission.score is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Submission has already been graded")
    if db_submission is None:
        db_submission = AssignmentSubmission(assignment_id=assignment_id, student_id=student_id)

    db_submission.content = submission.content
    db_submission.submitted_at = datetime.utcnow()
    session.add(db_submission)
    session.commit()
    session.refresh(db_submission)
    logger.info(f"Student {student_id} submitted assignment {assignment_id}")
    return db_submission


@app.put("/submissions/{submission_id}/score", response_model=SubmissionResponse, tags=["Coursework"])
async def grade_submission(
    submission_id: int,
    score: SubmissionScore,
    ctx: SessionContext = Depends(require_roles(*TEACHING_ROLES)),
    session: Session = Depends(get_session),
):
    """Score a submission"""
    db_submission = get_or_404(session, AssignmentSubmission, submission_id, "Submission")
    assignment = session.get(Assignment, db_submission.assignment_id)
    if score.score > assignment.total_points:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Score cannot exceed {assignment.total_points} points"
        )

    db_submission.score = score.score
    db_submission.feedback = score.feedback
    db_submission.graded_at = datetime.utcnow()
    session.add(db_submission)
    session.commit()
    session.refresh(db_submission)
    logger.info(f"Submission {submission_id} scored {score.score}/{assignment.total_points} by {ctx.username}")
    return db_submission


@app.post("/courses/{course_id}/quizzes", response_model=QuizResponse,
          status_code=status.HTTP_201_CREATED, tags=["Coursework"])
async def create_quiz(
    course_id: int,
    quiz: QuizCreate,
    ctx: SessionContext = Depends(require_roles(*TEACHING_ROLES)),
    session: Session = Depends(get_session),
):
    """Create a quiz for a course"""
    get_course_or_404(session, course_id)
    db_quiz = Quiz(course_id=course_id, **quiz.model_dump())
    session.add(db_quiz)
    session.commit()
    session.refresh(db_quiz)
    logger.info(f"Quiz {db_quiz.id} created for course {course_id}")
    return db_quiz


@app.post("/quizzes/{quiz_id}/attempts", response_model=QuizAttemptResponse,
          status_code=status.HTTP_201_CREATED, tags=["Coursework"])
async def record_quiz_attempt(
    quiz_id: int,
    attempt: QuizAttemptCreate,
    ctx: SessionContext = Depends(require_roles(*TEACHING_ROLES)),
    session: Session = Depends(get_session),
):
    """Record a completed quiz attempt with its score"""
    quiz = get_or_404(session, Quiz, quiz_id, "Quiz")
    get_student_or_404(session, attempt.student_id)
    ensure_enrolled(session, attempt.student_id, quiz.course_id)
    if attempt.score > quiz.total_points:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Score cannot exceed {quiz.total_points} points")

    attempts = session.exec(
        select(QuizAttempt).where(QuizAttempt.quiz_id == quiz_id, QuizAttempt.student_id == attempt.student_id)
    ).all()
    if len(attempts) >= quiz.max_attempts:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Maximum of {quiz.max_attempts} attempt(s) reached"
        )

    now = datetime.utcnow()
    db_attempt = QuizAttempt(
        quiz_id=quiz_id,
        student_id=attempt.student_id,
        score=attempt.score,
        status=QuizAttemptStatus.COMPLETED,
        started_at=now,
        completed_at=now,
    )
    session.add(db_attempt)
    session.commit()
    session.refresh(db_attempt)
    return db_attempt


@app.post("/courses/{course_id}/exams", response_model=ExamResponse,
          status_code=status.HTTP_201_CREATED, tags=["Coursework"])
async def create_exam(
    course_id: int,
    exam: ExamCreate,
    ctx: SessionContext = Depends(require_roles(*TEACHING_ROLES)),
    session: Session = Depends(get_session),
):
    """Create an exam for a course"""
    get_course_or_404(session, course_id)
    db_exam = Exam(course_id=course_id, **exam.model_dump())
    session.add(db_exam)
    session.commit()
    session.refresh(db_exam)
    logger.info(f"Exam {db_exam.id} created for course {course_id}")
    return db_exam


@app.post("/exams/{exam_id}/grades", response_model=ExamGradeResponse, tags=["Coursework"])
async def record_exam_grade(
    exam_id: int,
    grade: ExamGradeCreate,
    ctx: SessionContext = Depends(require_roles(*TEACHING_ROLES)),
    session: Session = Depends(get_session),
):
    """Record or correct a student's exam points"""
    exam = get_or_404(session, Exam, exam_id, "Exam")
    get_student_or_404(session, grade.student_id)
    ensure_enrolled(session, grade.student_id, exam.course_id)
    if grade.points_earned > exam.total_points:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Points cannot exceed {exam.total_points}")

    db_grade = session.exec(
        select(ExamGrade).where(ExamGrade.exam_id == exam_id, ExamGrade.student_id == grade.student_id)
    ).first()
    if db_grade is None:
        db_grade = ExamGrade(exam_id=exam_id, student_id=grade.student_id, points_earned=grade.points_earned)
    else:
        db_grade.points_earned = grade.points_earned
        db_grade.recorded_at = datetime.utcnow()
    session.add(db_grade)
    session.commit()
    session.refresh(db_grade)
    return db_grade


# ============= GRADING ENDPOINTS =============

@app.put("/courses/{course_id}/grade-weights", response_model=GradeWeightsResponse, tags=["Grading"])
async def update_grade_weights(
    course_id: int,
    weights: GradeWeightsUpdate,
    ctx: SessionContext = Depends(require_roles(*TEACHING_ROLES)),
    session: Session = Depends(get_session),
):
    """Set how assignments, quizzes and exams split the final grade"""
    get_course_or_404(session, course_id)
    try:
        return grading.save_grade_weights(
            session, course_id, weights.assignments_weight, weights.quizzes_weight, weights.exams_weight
        )
    except InvalidGradeWeightsError as e:
        logger.warning(f"Invalid grade weights for course {course_id}: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@app.get("/courses/{course_id}/grade-weights", response_model=GradeWeightsResponse, tags=["Grading"])
async def read_grade_weights(
    course_id: int,
    ctx: SessionContext = Depends(get_current_context),
    session: Session = Depends(get_session),
):
    get_course_or_404(session, course_id)
    weights = grading.get_grade_weights(session, course_id)
    if weights is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Grade weights not configured")
    return weights


@app.get("/courses/{course_id}/final-grades", response_model=List[StudentFinalGradeResponse], tags=["Grading"])
async def read_final_grades(
    course_id: int,
    ctx: SessionContext = Depends(require_roles(*TEACHING_ROLES)),
    session: Session = Depends(get_session),
):
    """Calculated final grades of every enrolled student"""
    get_course_or_404(session, course_id)
    return [
        StudentFinalGradeResponse(**vars(g), overridden=g.overridden)
        for g in grading.get_student_final_grades(session, course_id)
    ]


@app.get("/students/{student_id}/courses/{course_id}/grade", response_model=CourseGradeResponse, tags=["Grading"])
async def read_course_grade(
    student_id: int,
    course_id: int,
    ctx: SessionContext = Depends(get_current_context),
    session: Session = Depends(get_session),
):
    """A student's running percentage and weighted final grade in a course"""
    if ctx.role != UserRole.PROFESSOR:
        ensure_can_act_for(ctx, student_id)
    get_student_or_404(session, student_id)
    get_course_or_404(session, course_id)

    final = grading.calculate_final_grade(session, student_id, course_id)
    return CourseGradeResponse(
        student_id=student_id,
        course_id=course_id,
        percentage=grading.course_percentage(session, student_id, course_id),
        final_percentage=final,
        letter_grade=grading.percentage_to_letter_grade(final) if final is not None else None,
    )


# ============= TRANSCRIPT ENDPOINTS =============

@app.get("/students/{student_id}/transcript", response_model=TranscriptResponse, tags=["Transcripts"])
async def read_transcript(
    student_id: int,
    ctx: SessionContext = Depends(get_current_context),
    session: Session = Depends(get_session),
):
    """Completed courses with grades, GPA and earned credits"""
    ensure_can_act_for(ctx, student_id)
    student = get_student_or_404(session, student_id)
    entries = transcript_service.get_transcript_entries(session, student_id)
    logger.info(f"Transcript for student {student_id}: {len(entries)} entries")
    return TranscriptResponse(
        student_id=student_id,
        student_name=student.full_name,
        entries=[TranscriptEntryResponse(**vars(e), grade_points=e.grade_points) for e in entries],
        gpa=round(transcript_service.calculate_gpa(entries), 2),
        total_credits=transcript_service.calculate_total_credits(entries),
    )


# ============= ANNOUNCEMENT ENDPOINTS =============

@app.post("/announcements/", response_model=AnnouncementResponse,
          status_code=status.HTTP_201_CREATED, tags=["Announcements"])
async def create_announcement(
    announcement: AnnouncementCreate,
    ctx: SessionContext = Depends(require_roles(*STAFF_ROLES)),
    session: Session = Depends(get_session),
):
    """Publish or draft an announcement"""
    logger.info(f"{ctx.username} creating announcement: {announcement.title}")
    return announcement_service.create_announcement(session, ctx.user_id, **announcement.model_dump())


@app.get("/announcements/", response_model=List[AnnouncementResponse], tags=["Announcements"])
async def read_announcements(
    include_read: bool = True,
    ctx: SessionContext = Depends(get_current_context),
    session: Session = Depends(get_session),
):
    """Announcements visible to the caller"""
    return announcement_service.get_announcements_for_user(session, ctx.user_id, ctx.role, include_read)


@app.get("/announcements/all", response_model=List[AnnouncementResponse], tags=["Announcements"])
async def read_all_announcements(
    include_archived: bool = False,
    ctx: SessionContext = Depends(require_roles(*STAFF_ROLES)),
    session: Session = Depends(get_session),
):
    """Every active announcement regardless of audience or status"""
    return announcement_service.get_all_announcements(session, include_archived)


@app.get("/announcements/unread-count", response_model=UnreadCountResponse, tags=["Announcements"])
async def read_unread_count(
    ctx: SessionContext = Depends(get_current_context),
    session: Session = Depends(get_session),
):
    return UnreadCountResponse(unread=announcement_service.get_unread_count(session, ctx.user_id, ctx.role))


@app.put("/announcements/{announcement_id}", response_model=AnnouncementResponse, tags=["Announcements"])
async def update_announcement(
    announcement_id: int,
    announcement_update: AnnouncementUpdate,
    ctx: SessionContext = Depends(require_roles(*STAFF_ROLES)),
    session: Session = Depends(get_session),
):
    # Only the audience and expiry may be cleared
    changes = {
        key: value
        for key, value in announcement_update.model_dump(exclude_unset=True).items()
        if value is not None or key in ("target_role", "expiry_date")
    }
    updated = announcement_service.update_announcement(session, announcement_id, ctx.user_id, **changes)
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Announcement not found")
    return updated


@app.post("/announcements/{announcement_id}/archive", status_code=status.HTTP_204_NO_CONTENT, tags=["Announcements"])
async def archive_announcement(
    announcement_id: int,
    ctx: SessionContext = Depends(require_roles(*STAFF_ROLES)),
    session: Session = Depends(get_session),
):
    if not announcement_service.archive_announcement(session, announcement_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Announcement not found")
    return None


@app.delete("/announcements/{announcement_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Announcements"])
async def delete_announcement(
    announcement_id: int,
    ctx: SessionContext = Depends(require_roles(*STAFF_ROLES)),
    session: Session = Depends(get_session),
):
    if not announcement_service.delete_announcement(session, announcement_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Announcement not found")
    return None


@app.post("/announcements/{announcement_id}/read", status_code=status.HTTP_204_NO_CONTENT, tags=["Announcements"])
async def mark_announcement_read(
    announcement_id: int,
    ctx: SessionContext = Depends(get_current_context),
    session: Session = Depends(get_session),
):
    """Mark an announcement as read by the caller"""
    announcement = session.get(Announcement, announcement_id)
    if not announcement or not announcement.is_active:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Announcement not found")
    announcement_service.mark_as_read(session, ctx.user_id, announcement_id)
    return None


# ============= FACILITY ENDPOINTS =============

def _ensure_unique_room_code(session: Session, code: str, room_id: Optional[int] = None) -> None:
    existing = facilities.get_room_by_code(session, code)
    if existing and existing.id != room_id:
        logger.warning(f"Room code already in use: {code}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Room code already exists")


@app.post("/rooms/", response_model=RoomResponse, status_code=status.HTTP_201_CREATED, tags=["Facilities"])
async def create_room(
    room: RoomCreate,
    ctx: SessionContext = Depends(require_roles(*STAFF_ROLES)),
    session: Session = Depends(get_session),
):
    try:
        logger.info(f"Creating room: {room.code}")
        _ensure_unique_room_code(session, room.code)
        db_room = Room(**room.model_dump())
        session.add(db_room)
        session.commit()
        session.refresh(db_room)
        logger.info(f"Room created successfully with ID: {db_room.id}")
        return db_room
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating room: {str(e)}", exc_info=True)
        session.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while creating the room"
        )


@app.get("/rooms/", response_model=List[RoomResponse], tags=["Facilities"])
async def read_rooms(
    available_only: bool = False,
    ctx: SessionContext = Depends(get_current_context),
    session: Session = Depends(get_session),
):
    return facilities.get_rooms(session, available_only)


@app.get("/rooms/{room_id}", response_model=RoomResponse, tags=["Facilities"])
async def read_room(
    room_id: int,
    ctx: SessionContext = Depends(get_current_context),
    session: Session = Depends(get_session),
):
    return get_or_404(session, Room, room_id, "Room")


@app.put("/rooms/{room_id}", response_model=RoomResponse, tags=["Facilities"])
async def update_room(
    room_id: int,
    room_update: RoomUpdate,
    ctx: SessionContext = Depends(require_roles(*STAFF_ROLES)),
    session: Session = Depends(get_session),
):
    """Update a room's information"""
    try:
        logger.info(f"Updating room with ID: {room_id}")
        db_room = get_or_404(session, Room, room_id, "Room")
        update_data = room_update.model_dump(exclude_unset=True)
        if update_data.get("code"):
            _ensure_unique_room_code(session, update_data["code"], room_id)

        for key, value in update_data.items():
            if key != "location" and value is None:
                continue
            setattr(db_room, key, value)

        session.add(db_room)
        session.commit()
        session.refresh(db_room)
        logger.info(f"Room updated successfully: {db_room.id}")
        return db_room
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating room {room_id}: {str(e)}", exc_info=True)
        session.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while updating the room"
        )


@app.delete("/rooms/{room_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Facilities"])
async def delete_room(
    room_id: int,
    ctx: SessionContext = Depends(require_roles(*STAFF_ROLES)),
    session: Session = Depends(get_session),
):
    """Delete a room that has no upcoming bookings"""
    if not facilities.delete_room(session, room_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
    return None


@app.get("/rooms/{room_id}/availability", response_model=RoomAvailability, tags=["Facilities"])
async def read_room_availability(
    room_id: int,
    start_time: datetime,
    end_time: datetime,
    ctx: SessionContext = Depends(get_current_context),
    session: Session = Depends(get_session),
):
    get_or_404(session, Room, room_id, "Room")
    if end_time <= start_time:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="End time must be after start time")
    return RoomAvailability(
        room_id=room_id,
        start_time=start_time,
        end_time=end_time,
        available=facilities.is_room_available(session, room_id, start_time, end_time),
    )


@app.get("/rooms/{room_id}/bookings", response_model=List[BookingResponse], tags=["Facilities"])
async def read_room_bookings(
    room_id: int,
    upcoming_only: bool = True,
    ctx: SessionContext = Depends(get_current_context),
    session: Session = Depends(get_session),
):
    get_or_404(session, Room, room_id, "Room")
    return facilities.get_bookings_for_room(session, room_id, upcoming_only)


@app.post("/bookings/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED, tags=["Facilities"])
async def create_booking(
    booking: BookingCreate,
    ctx: SessionContext = Depends(require_roles(*TEACHING_ROLES)),
    session: Session = Depends(get_session),
):
    """Book a room for the caller"""
    logger.info(f"User {ctx.user_id} booking room {booking.room_id} from {booking.start_time} to {booking.end_time}")
    room = get_or_404(session, Room, booking.room_id, "Room")
    return facilities.create_booking(
        session, room, ctx.user_id, booking.start_time, booking.end_time, booking.purpose
    )


@app.get("/bookings/mine", response_model=List[BookingResponse], tags=["Facilities"])
async def read_my_bookings(
    ctx: SessionContext = Depends(get_current_context),
    session: Session = Depends(get_session),
):
    return facilities.get_bookings_for_user(session, ctx.user_id)


def _get_own_booking(session: Session, ctx: SessionContext, booking_id: int) -> Booking:
    booking = get_or_404(session, Booking, booking_id, "Booking")
    if booking.user_id != ctx.user_id and not ctx.is_staff:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only change your own bookings")
    return booking


@app.put("/bookings/{booking_id}", response_model=BookingResponse, tags=["Facilities"])
async def update_booking(
    booking_id: int,
    booking_update: BookingUpdate,
    ctx: SessionContext = Depends(get_current_context),
    session: Session = Depends(get_session),
):
    """Move a booking to another time slot or room"""
    booking = _get_own_booking(session, ctx, booking_id)
    room_id = booking_update.room_id if booking_update.room_id is not None else booking.room_id
    room = get_or_404(session, Room, room_id, "Room")
    return facilities.reschedule_booking(
        session, booking, room, booking_update.start_time, booking_update.end_time, booking_update.purpose
    )


@app.post("/bookings/{booking_id}/cancel", response_model=BookingResponse, tags=["Facilities"])
async def cancel_booking(
    booking_id: int,
    ctx: SessionContext = Depends(get_current_context),
    session: Session = Depends(get_session),
):
    booking = _get_own_booking(session, ctx, booking_id)
    if not facilities.cancel_booking(session, booking_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Booking is already cancelled")
    session.refresh(booking)
    return booking


@app.post("/equipment/", response_model=EquipmentResponse, status_code=status.HTTP_201_CREATED, tags=["Facilities"])
async def create_equipment(
    equipment: EquipmentCreate,
    ctx: SessionContext = Depends(require_roles(*STAFF_ROLES)),
    session: Session = Depends(get_session),
):
    if equipment.serial_number and session.exec(
        select(Equipment).where(Equipment.serial_number == equipment.serial_number)
    ).first():
        logger.warning(f"Equipment with serial number {equipment.serial_number} already exists")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Serial number already registered")
    return facilities.add_equipment(
        session, equipment.equipment_type, equipment.serial_number, equipment.location, equipment.notes
    )


@app.get("/equipment/", response_model=List[EquipmentResponse], tags=["Facilities"])
async def read_equipment(
    equipment_type: Optional[str] = None,
    equipment_status: Optional[EquipmentStatus] = Query(None, alias="status"),
    ctx: SessionContext = Depends(require_roles(*STAFF_ROLES)),
    session: Session = Depends(get_session),
):
    return facilities.get_equipment(session, equipment_type, equipment_status)


@app.get("/equipment/types", response_model=List[str], tags=["Facilities"])
async def read_equipment_types(
    ctx: SessionContext = Depends(require_roles(*STAFF_ROLES)),
    session: Session = Depends(get_session),
):
    return facilities.get_equipment_types(session)


@app.put("/equipment/{equipment_id}/status", response_model=EquipmentResponse, tags=["Facilities"])
async def update_equipment_status(
    equipment_id: int,
    status_update: EquipmentStatusUpdate,
    ctx: SessionContext = Depends(require_roles(*STAFF_ROLES)),
    session: Session = Depends(get_session),
):
    equipment = get_or_404(session, Equipment, equipment_id, "Equipment")
    return facilities.set_equipment_status(session, equipment, status_update.status)


@app.post("/equipment/{equipment_id}/allocations", response_model=AllocationResponse,
          status_code=status.HTTP_201_CREATED, tags=["Facilities"])
async def allocate_equipment(
    equipment_id: int,
    allocation: AllocationCreate,
    ctx: SessionContext = Depends(require_roles(*STAFF_ROLES)),
    session: Session = Depends(get_session),
):
    """Allocate equipment to a user or a department"""
    equipment = get_or_404(session, Equipment, equipment_id, "Equipment")
    if allocation.user_id is not None:
        get_or_404(session, User, allocation.user_id, "User")
    return facilities.allocate_equipment(
        session, equipment, ctx.user_id, allocation.user_id, allocation.department, allocation.notes
    )


@app.post("/allocations/{allocation_id}/return", response_model=AllocationResponse, tags=["Facilities"])
async def return_equipment(
    allocation_id: int,
    ctx: SessionContext = Depends(require_roles(*STAFF_ROLES)),
    session: Session = Depends(get_session),
):
    return facilities.return_equipment(session, allocation_id)


@app.get("/users/{user_id}/allocations", response_model=List[AllocationResponse], tags=["Facilities"])
async def read_user_allocations(
    user_id: int,
    ctx: SessionContext = Depends(get_current_context),
    session: Session = Depends(get_session),
):
    ensure_can_act_for(ctx, user_id)
    return facilities.get_active_allocations(session, user_id=user_id)


@app.get("/departments/{department}/allocations", response_model=List[AllocationResponse], tags=["Facilities"])
async def read_department_allocations(
    department: str,
    ctx: SessionContext = Depends(require_roles(*STAFF_ROLES)),
    session: Session = Depends(get_session),
):
    return facilities.get_active_allocations(session, department=department)


@app.post("/maintenance-tickets/", response_model=TicketResponse,
          status_code=status.HTTP_201_CREATED, tags=["Facilities"])
async def create_maintenance_ticket(
    ticket: TicketCreate,
    ctx: SessionContext = Depends(get_current_context),
    session: Session = Depends(get_session),
):
    """Report a problem with a room"""
    room = get_or_404(session, Room, ticket.room_id, "Room")
    return facilities.create_ticket(session, room, ctx.user_id, ticket.description)


@app.get("/maintenance-tickets/", response_model=List[TicketResponse], tags=["Facilities"])
async def read_maintenance_tickets(
    ticket_status: Optional[TicketStatus] = Query(None, alias="status"),
    room_id: Optional[int] = None,
    ctx: SessionContext = Depends(require_roles(*STAFF_ROLES)),
    session: Session = Depends(get_session),
):
    return facilities.get_tickets(session, ticket_status, room_id)


@app.put("/maintenance-tickets/{ticket_id}/assign", response_model=TicketResponse, tags=["Facilities"])
async def assign_maintenance_ticket(
    ticket_id: int,
    assignment: TicketAssign,
    ctx: SessionContext = Depends(require_roles(*STAFF_ROLES)),
    session: Session = Depends(get_session),
):
    ticket = get_or_404(session, MaintenanceTicket, ticket_id, "Maintenance ticket")
    assignee = get_or_404(session, User, assignment.staff_id, "User")
    if assignee.role not in STAFF_ROLES:
        logger.warning(f"User {assignee.id} is {assignee.role.value} and cannot take maintenance tickets")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Tickets can only be assigned to staff")
    return facilities.assign_ticket(session, ticket, assignee.id)


@app.put("/maintenance-tickets/{ticket_id}/status", response_model=TicketResponse, tags=["Facilities"])
async def update_maintenance_ticket_status(
    ticket_id: int,
    status_update: TicketStatusUpdate,
    ctx: SessionContext = Depends(require_roles(*STAFF_ROLES)),
    session: Session = Depends(get_session),
):
    ticket = get_or_404(session, MaintenanceTicket, ticket_id, "Maintenance ticket")
    return facilities.update_ticket_status(session, ticket, status_update.status)
