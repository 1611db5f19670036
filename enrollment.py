"""Enrollment admission control.

A student is admitted to a course only after four checks, run in this
order with the first failure winning: seat availability, prerequisites,
duplicate enrollment, and the credit-load cap. The enrollment row and the
course seat counter are then written in one transaction.
"""
from sqlmodel import Session, select, func
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from typing import List, Optional, Set
from datetime import datetime
import logging

from models import Course, Enrollment, EnrollmentStatus, User
from errors import (
    AlreadyEnrolledError,
    CourseFullError,
    CreditLimitExceededError,
    PrerequisitesNotMetError,
    StorageError,
)

logger = logging.getLogger(__name__)

MAX_CREDITS = 18


def enroll(session: Session, student: User, course: Course) -> Enrollment:
    """Admit ``student`` to ``course`` and return the committed enrollment.

    Raises:
        CourseFullError: no seat is left, checked again atomically at write time.
        PrerequisitesNotMetError: some prerequisite is not in the student's completed set.
        AlreadyEnrolledError: an ENROLLED row already exists for the pair.
        CreditLimitExceededError: the course would push the student past MAX_CREDITS.
        StorageError: the write failed; nothing was persisted.
    """
    if course.current_seats >= course.max_seats:
        raise CourseFullError(course.code)

    missing = get_missing_prerequisites(session, student.id, course)
    if missing:
        raise PrerequisitesNotMetError(missing)

    if is_enrolled(session, student.id, course.id):
        raise AlreadyEnrolledError(course.code)

    current_credits = get_total_enrolled_credits(session, student.id)
    if current_credits + course.credits > MAX_CREDITS:
        raise CreditLimitExceededError(current_credits, course.credits, MAX_CREDITS)

    course_id, course_code = course.id, course.code
    try:
        enrollment = Enrollment(
            student_id=student.id,
            course_id=course_id,
            status=EnrollmentStatus.ENROLLED,
            enrollment_date=datetime.utcnow(),
        )
        session.add(enrollment)
        session.flush()
        enrollment_id = enrollment.id

        if not _claim_seat(session, course_id):
            session.rollback()
            logger.warning(f"Lost the last seat of course {course_code} to a concurrent enrollment")
            raise CourseFullError(course_code)

        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Enrollment of student {student.id} in course {course_code} rolled back: {str(e)}")
        raise StorageError(f"Could not enroll student in {course_code}") from e

    logger.info(f"Student {student.id} enrolled in course {course_code} (enrollment {enrollment_id})")
    return get_enrollment(session, enrollment_id)


def drop(session: Session, enrollment_id: int) -> bool:
    """Drop an enrollment and release its seat.

    Returns False, touching nothing, when the enrollment does not exist or
    is no longer ENROLLED.
    """
    enrollment = session.get(Enrollment, enrollment_id)
    if enrollment is None:
        return False
    if enrollment.status != EnrollmentStatus.ENROLLED:
        logger.warning(f"Enrollment {enrollment_id} is {enrollment.status.value}, not dropping")
        return False

    course_id = enrollment.course_id
    try:
        enrollment.status = EnrollmentStatus.DROPPED
        enrollment.updated_at = datetime.utcnow()
        session.add(enrollment)
        session.flush()
        _release_seat(session, course_id)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Dropping enrollment {enrollment_id} rolled back: {str(e)}")
        raise StorageError(f"Could not drop enrollment {enrollment_id}") from e

    logger.info(f"Enrollment {enrollment_id} dropped from course {course_id}")
    return True


def get_enrollment(session: Session, enrollment_id: int) -> Optional[Enrollment]:
    return session.get(Enrollment, enrollment_id)


def get_student_enrollments(session: Session, student_id: int, enrolled_only: bool = False) -> List[Enrollment]:
    """Enrollments of a student, most recent first"""
    statement = select(Enrollment).where(Enrollment.student_id == student_id)
    if enrolled_only:
        statement = statement.where(Enrollment.status == EnrollmentStatus.ENROLLED)
    statement = statement.order_by(Enrollment.enrollment_date.desc(), Enrollment.id.desc())
    return list(session.exec(statement).all())


def get_course_enrollments(session: Session, course_id: int, enrolled_only: bool = False) -> List[Enrollment]:
    statement = select(Enrollment).where(Enrollment.course_id == course_id)
    if enrolled_only:
        statement = statement.where(Enrollment.status == EnrollmentStatus.ENROLLED)
    return list(session.exec(statement.order_by(Enrollment.id)).all())


def get_total_enrolled_credits(session: Session, student_id: int) -> int:
    total = session.exec(
        select(func.sum(Course.credits))
        .join(Enrollment, Enrollment.course_id == Course.id)
        .where(
            Enrollment.student_id == student_id,
            Enrollment.status == EnrollmentStatus.ENROLLED,
        )
    ).one()
    return int(total or 0)


def get_completed_course_ids(session: Session, student_id: int) -> Set[int]:
    rows = session.exec(
        select(Enrollment.course_id).where(
            Enrollment.student_id == student_id,
            Enrollment.status == EnrollmentStatus.COMPLETED,
        )
    ).all()
    return set(rows)


def get_missing_prerequisites(session: Session, student_id: int, course: Course) -> List[str]:
    """Codes of the prerequisites the student has not completed, in catalog order"""
    if not course.prerequisite_ids:
        return []

    completed = get_completed_course_ids(session, student_id)
    missing_ids = [pid for pid in course.prerequisite_ids if pid not in completed]
    if not missing_ids:
        return []

    codes = {
        c.id: c.code
        for c in session.exec(select(Course).where(Course.id.in_(missing_ids))).all()
    }
    # A prerequisite whose course row is gone still blocks admission
    return [codes.get(pid, f"#{pid}") for pid in missing_ids]


def creates_prerequisite_cycle(session: Session, course_id: int, prerequisite_ids: List[int]) -> bool:
    """True if giving ``course_id`` these prerequisites would make it (transitively) require itself"""
    seen: Set[int] = set()
    stack = list(prerequisite_ids)
    while stack:
        current = stack.pop()
        if current == course_id:
            return True
        if current in seen:
            continue
        seen.add(current)
        course = session.get(Course, current)
        if course is not None:
            stack.extend(course.prerequisite_ids or [])
    return False


def has_enrolled_students(session: Session, course_id: int) -> bool:
    return session.exec(
        select(Enrollment.id).where(
            Enrollment.course_id == course_id,
            Enrollment.status == EnrollmentStatus.ENROLLED,
        )
    ).first() is not None


def is_enrolled(session: Session, student_id: int, course_id: int) -> bool:
    existing = session.exec(
        select(Enrollment.id).where(
            Enrollment.student_id == student_id,
            Enrollment.course_id == course_id,
            Enrollment.status == EnrollmentStatus.ENROLLED,
        )
    ).first()
    return existing is not None


def _claim_seat(session: Session, course_id: int) -> bool:
    """Increment current_seats only while it is below max_seats"""
    result = session.connection().execute(
        update(Course)
        .where(Course.id == course_id, Course.current_seats < Course.max_seats)
        .values(current_seats=Course.current_seats + 1, updated_at=datetime.utcnow())
    )
    return result.rowcount == 1


def _release_seat(session: Session, course_id: int) -> None:
    session.connection().execute(
        update(Course)
        .where(Course.id == course_id, Course.current_seats > 0)
        .values(current_seats=Course.current_seats - 1, updated_at=datetime.utcnow())
    )
