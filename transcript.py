from dataclasses import dataclass
from sqlmodel import Session, select
from typing import List, Optional

from models import Course, Enrollment, EnrollmentStatus

GRADE_POINTS = {
    "A+": 4.0,
    "A": 4.0,
    "A-": 3.7,
    "B+": 3.3,
    "B": 3.0,
    "B-": 2.7,
    "C+": 2.3,
    "C": 2.0,
    "C-": 1.7,
    "D+": 1.3,
    "D": 1.0,
    "F": 0.0,
}


@dataclass
class TranscriptEntry:
    course_code: str
    course_name: str
    credits: int
    final_grade: str
    semester: Optional[str]

    @property
    def grade_points(self) -> float:
        # Unknown letters count as zero
        return GRADE_POINTS.get(self.final_grade.strip().upper(), 0.0)


def get_transcript_entries(session: Session, student_id: int) -> List[TranscriptEntry]:
    """Graded completed or failed courses, most recent semester first"""
    rows = session.exec(
        select(Enrollment, Course)
        .join(Course, Enrollment.course_id == Course.id)
        .where(
            Enrollment.student_id == student_id,
            Enrollment.status.in_([EnrollmentStatus.COMPLETED, EnrollmentStatus.FAILED]),
        )
    ).all()

    entries = [
        TranscriptEntry(
            course_code=course.code,
            course_name=course.name,
            credits=course.credits,
            final_grade=enrollment.grade,
            semester=course.semester,
        )
        for enrollment, course in rows
        if enrollment.grade and enrollment.grade.strip()
    ]
    entries.sort(key=lambda e: e.semester or "", reverse=True)
    return entries


def calculate_gpa(entries: List[TranscriptEntry]) -> float:
    """Mean of per-course grade points"""
    if not entries:
        return 0.0
    return sum(e.grade_points for e in entries) / len(entries)


def calculate_total_credits(entries: List[TranscriptEntry]) -> int:
    return sum(e.credits for e in entries)
