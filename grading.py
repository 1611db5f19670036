"""Grade aggregation: category percentages, weighted final grades and letters."""
from dataclasses import dataclass
from sqlmodel import Session, select
from typing import List, Optional, Tuple
import logging

from models import (
    Assignment,
    AssignmentSubmission,
    CourseGradeWeights,
    Enrollment,
    EnrollmentStatus,
    Exam,
    ExamGrade,
    Quiz,
    QuizAttempt,
    QuizAttemptStatus,
    User,
)
from errors import InvalidGradeWeightsError

logger = logging.getLogger(__name__)

WEIGHT_TOLERANCE = 0.01

# Lowest percentage earning each letter, highest first
LETTER_GRADE_SCALE = [
    (97, "A+"),
    (93, "A"),
    (89, "A-"),
    (84, "B+"),
    (80, "B"),
    (76, "B-"),
    (73, "C+"),
    (70, "C"),
    (67, "C-"),
    (64, "D+"),
    (60, "D"),
]

# (points earned, points possible) for one category
PointTotals = Tuple[float, float]


@dataclass
class StudentFinalGrade:
    enrollment_id: int
    student_id: int
    student_name: str
    course_id: int
    calculated_percentage: Optional[float]
    calculated_grade: Optional[str]
    current_grade: Optional[str]

    @property
    def overridden(self) -> bool:
        return self.current_grade is not None and self.current_grade != self.calculated_grade


def weights_are_valid(assignments: float, quizzes: float, exams: float) -> bool:
    return abs(assignments + quizzes + exams - 100.0) < WEIGHT_TOLERANCE


def save_grade_weights(
    session: Session, course_id: int, assignments: float, quizzes: float, exams: float
) -> CourseGradeWeights:
    """Create or replace the weight split of a course"""
    if not weights_are_valid(assignments, quizzes, exams):
        raise InvalidGradeWeightsError(assignments + quizzes + exams)

    weights = session.get(CourseGradeWeights, course_id)
    if weights is None:
        weights = CourseGradeWeights(course_id=course_id)
    weights.assignments_weight = assignments
    weights.quizzes_weight = quizzes
    weights.exams_weight = exams

    session.add(weights)
    session.commit()
    session.refresh(weights)
    logger.info(f"Grade weights for course {course_id}: {assignments}/{quizzes}/{exams}")
    return weights


def get_grade_weights(session: Session, course_id: int) -> Optional[CourseGradeWeights]:
    return session.get(CourseGradeWeights, course_id)


def assignment_totals(session: Session, student_id: int, course_id: int) -> PointTotals:
    rows = session.exec(
        select(AssignmentSubmission.score, Assignment.total_points)
        .join(Assignment, AssignmentSubmission.assignment_id == Assignment.id)
        .where(
            Assignment.course_id == course_id,
            AssignmentSubmission.student_id == student_id,
            AssignmentSubmission.score.is_not(None),
        )
    ).all()
    return _sum_points(rows)


def quiz_totals(session: Session, student_id: int, course_id: int) -> PointTotals:
    """Best completed attempt of each quiz"""
    rows = session.exec(
        select(QuizAttempt.quiz_id, QuizAttempt.score, Quiz.total_points)
        .join(Quiz, QuizAttempt.quiz_id == Quiz.id)
        .where(
            Quiz.course_id == course_id,
            QuizAttempt.student_id == student_id,
            QuizAttempt.status == QuizAttemptStatus.COMPLETED,
            QuizAttempt.score.is_not(None),
        )
    ).all()

    best = {}
    for quiz_id, score, total_points in rows:
        if quiz_id not in best or score > best[quiz_id][0]:
            best[quiz_id] = (score, total_points)
    return _sum_points(best.values())


def exam_totals(session: Session, student_id: int, course_id: int) -> PointTotals:
    rows = session.exec(
        select(ExamGrade.points_earned, Exam.total_points)
        .join(Exam, ExamGrade.exam_id == Exam.id)
        .where(Exam.course_id == course_id, ExamGrade.student_id == student_id)
    ).all()
    return _sum_points(rows)


def course_percentage(session: Session, student_id: int, course_id: int) -> Optional[float]:
    """Unweighted percentage over every graded item of the course"""
    earned = possible = 0.0
    for totals in (
        assignment_totals(session, student_id, course_id),
        quiz_totals(session, student_id, course_id),
        exam_totals(session, student_id, course_id),
    ):
        earned += totals[0]
        possible += totals[1]
    if possible == 0:
        return None
    return earned / possible * 100.0


def calculate_final_grade(session: Session, student_id: int, course_id: int) -> Optional[float]:
    """Weighted final percentage, normalised over the categories that have grades.

    Returns None when the course has no weights or the student has no grades.
    """
    weights = get_grade_weights(session, course_id)
    if weights is None:
        return None

    categories = [
        (_percentage(assignment_totals(session, student_id, course_id)), weights.assignments_weight),
        (_percentage(quiz_totals(session, student_id, course_id)), weights.quizzes_weight),
        (_percentage(exam_totals(session, student_id, course_id)), weights.exams_weight),
    ]

    weighted_total = 0.0
    total_weight = 0.0
    for percentage, weight in categories:
        if percentage is None:
            continue
        weighted_total += percentage * weight
        total_weight += weight

    if total_weight == 0:
        return None
    return weighted_total / total_weight


def percentage_to_letter_grade(percentage: float) -> str:
    for threshold, letter in LETTER_GRADE_SCALE:
        if percentage >= threshold:
            return letter
    return "F"


def get_student_final_grades(session: Session, course_id: int) -> List[StudentFinalGrade]:
    rows = session.exec(
        select(Enrollment, User)
        .join(User, Enrollment.student_id == User.id)
        .where(Enrollment.course_id == course_id, Enrollment.status == EnrollmentStatus.ENROLLED)
        .order_by(User.full_name)
    ).all()

    grades = []
    for enrollment, student in rows:
        percentage = calculate_final_grade(session, student.id, course_id)
        grades.append(
            StudentFinalGrade(
                enrollment_id=enrollment.id,
                student_id=student.id,
                student_name=student.full_name,
                course_id=course_id,
                calculated_percentage=percentage,
                calculated_grade=percentage_to_letter_grade(percentage) if percentage is not None else None,
                current_grade=enrollment.grade,
            )
        )
    return grades


def update_final_grade(session: Session, enrollment_id: int, letter_grade: str) -> bool:
    enrollment = session.get(Enrollment, enrollment_id)
    if enrollment is None:
        return False
    enrollment.grade = letter_grade
    session.add(enrollment)
    session.commit()
    logger.info(f"Final grade {letter_grade} recorded for enrollment {enrollment_id}")
    return True


def _sum_points(rows) -> PointTotals:
    earned = possible = 0.0
    for score, total_points in rows:
        earned += score
        possible += total_points
    return earned, possible


def _percentage(totals: PointTotals) -> Optional[float]:
    earned, possible = totals
    if possible == 0:
        return None
    return earned / possible * 100.0
