from typing import List


class EnrollmentError(Exception):
    """Base class for enrollment admission failures"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class CourseFullError(EnrollmentError):
    def __init__(self, course_code: str):
        super().__init__(f"Course {course_code} is full. No available seats.")
        self.course_code = course_code


class PrerequisitesNotMetError(EnrollmentError):
    def __init__(self, missing_codes: List[str]):
        super().__init__(
            f"Prerequisites not met. Required: {', '.join(missing_codes)}. "
            "Please complete these courses before enrolling."
        )
        self.missing_codes = list(missing_codes)


class AlreadyEnrolledError(EnrollmentError):
    def __init__(self, course_code: str):
        super().__init__(f"Student is already enrolled in {course_code}")
        self.course_code = course_code


class CreditLimitExceededError(EnrollmentError):
    def __init__(self, current_credits: int, course_credits: int, limit: int):
        super().__init__(
            f"Enrollment would exceed maximum credit limit of {limit} credits. "
            f"Current credits: {current_credits}, Course credits: {course_credits}."
        )
        self.current_credits = current_credits
        self.course_credits = course_credits
        self.limit = limit


class StorageError(Exception):
    """A transaction or connection failure; the transaction was rolled back"""


class InvalidGradeWeightsError(ValueError):
    def __init__(self, total: float):
        super().__init__(f"Grade weights must sum to 100%, got {total:g}%")
        self.total = total


class FacilityError(Exception):
    """Base class for rejected room, equipment and ticket operations"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class RoomUnavailableError(FacilityError):
    def __init__(self, room_code: str, status: str):
        super().__init__(f"Room {room_code} is {status} and cannot be booked")
        self.room_code = room_code


class BookingConflictError(FacilityError):
    def __init__(self, room_code: str, conflicting_ids: List[int]):
        super().__init__(
            f"Room {room_code} is not available for the requested time slot. "
            f"Conflicting booking(s): {', '.join(str(i) for i in conflicting_ids)}"
        )
        self.room_code = room_code
        self.conflicting_ids = list(conflicting_ids)


class EquipmentUnavailableError(FacilityError):
    def __init__(self, equipment_id: int, status: str):
        super().__init__(f"Equipment {equipment_id} is {status} and not available for allocation")
        self.equipment_id = equipment_id
