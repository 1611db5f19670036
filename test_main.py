import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from models import Course, EnrollmentStatus


def course_payload(code, **overrides):
    payload = {"code": code, "name": f"Course {code}", "credits": 3, "max_seats": 30}
    payload.update(overrides)
    return payload


# ============= ROOT ENDPOINT TESTS =============

def test_read_root(client: TestClient):
    """Test root endpoint"""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert "message" in data
    assert "docs" in data


def test_health(client: TestClient):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


# ============= USER TESTS =============

def test_read_users_requires_staff(client: TestClient, student, staff, auth_headers):
    assert client.get("/users/", headers=auth_headers(student)).status_code == 403

    response = client.get("/users/?role=STUDENT", headers=auth_headers(staff))
    assert response.status_code == 200
    assert [u["username"] for u in response.json()] == ["alice"]


def test_read_users_pagination(client: TestClient, make_user, staff, auth_headers):
    for i in range(5):
        make_user(f"student{i}")

    response = client.get("/users/?role=STUDENT&skip=2&limit=2", headers=auth_headers(staff))
    assert response.status_code == 200
    data = response.json()
    assert len(data) == 2
    assert data[0]["username"] == "student2"


def test_read_own_user(client: TestClient, student, other_student, auth_headers):
    response = client.get(f"/users/{student.id}", headers=auth_headers(student))
    assert response.status_code == 200
    assert response.json()["email"] == "alice@example.edu"

    response = client.get(f"/users/{other_student.id}", headers=auth_headers(student))
    assert response.status_code == 403


def test_read_user_not_found(client: TestClient, staff, auth_headers):
    response = client.get("/users/9999", headers=auth_headers(staff))
    assert response.status_code == 404
    assert "not found" in response.json()["detail"].lower()


def test_create_user_invalid_email(client: TestClient, admin, auth_headers):
    response = client.post(
        "/users/",
        json={"username": "bad", "email": "invalid-email", "full_name": "Bad", "password": "longenough"},
        headers=auth_headers(admin),
    )
    assert response.status_code == 422


# ============= COURSE TESTS =============

def test_create_course(client: TestClient, staff, auth_headers):
    """Test creating a new course"""
    response = client.post(
        "/courses/",
        json=course_payload(
            "CS101",
            description="Learn programming",
            semester="Fall 2025",
            options={"attendance_required": True, "extra": {"room": "B12"}},
        ),
        headers=auth_headers(staff),
    )
    assert response.status_code == 201
    data = response.json()
    assert data["code"] == "CS101"
    assert data["current_seats"] == 0
    assert data["prerequisite_ids"] == []
    assert data["options"]["attendance_required"] is True
    assert data["options"]["online"] is False
    assert data["options"]["extra"] == {"room": "B12"}
    assert "id" in data


def test_create_course_requires_staff(client: TestClient, student, professor, auth_headers):
    assert client.post("/courses/", json=course_payload("CS101")).status_code == 401
    assert client.post("/courses/", json=course_payload("CS101"), headers=auth_headers(student)).status_code == 403
    assert client.post("/courses/", json=course_payload("CS101"), headers=auth_headers(professor)).status_code == 403


def test_create_course_duplicate_code(client: TestClient, staff, auth_headers):
    client.post("/courses/", json=course_payload("CS101"), headers=auth_headers(staff))
    response = client.post("/courses/", json=course_payload("CS101"), headers=auth_headers(staff))
    assert response.status_code == 400
    assert "already exists" in response.json()["detail"]


def test_create_course_invalid_credits(client: TestClient, staff, auth_headers):
    response = client.post("/courses/", json=course_payload("CS101", credits=0), headers=auth_headers(staff))
    assert response.status_code == 422


def test_create_course_unknown_prerequisite(client: TestClient, staff, auth_headers):
    response = client.post(
        "/courses/", json=course_payload("CS201", prerequisite_ids=[9999]), headers=auth_headers(staff)
    )
    assert response.status_code == 400
    assert "9999" in response.json()["detail"]


def test_read_courses_is_public(client: TestClient, make_course):
    make_course("CS102")
    make_course("CS101")
    make_course("OLD100", is_active=False)

    response = client.get("/courses/")
    assert response.status_code == 200
    assert [c["code"] for c in response.json()] == ["CS101", "CS102"]

    response = client.get("/courses/?active_only=false")
    assert len(response.json()) == 3


def test_read_course_not_found(client: TestClient):
    response = client.get("/courses/9999")
    assert response.status_code == 404


def test_update_course(client: TestClient, staff, make_course, auth_headers):
    course = make_course("CS101")
    prereq = make_course("MATH101")

    response = client.put(
        f"/courses/{course.id}",
        json={"name": "Programming I", "credits": 4, "prerequisite_ids": [prereq.id], "options": {"online": True}},
        headers=auth_headers(staff),
    )
    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "Programming I"
    assert data["credits"] == 4
    assert data["code"] == "CS101"
    assert data["prerequisite_ids"] == [prereq.id]
    assert data["options"]["online"] is True


def test_update_course_cannot_require_itself(client: TestClient, staff, make_course, auth_headers):
    course = make_course("CS101")
    response = client.put(
        f"/courses/{course.id}", json={"prerequisite_ids": [course.id]}, headers=auth_headers(staff)
    )
    assert response.status_code == 400


def test_update_course_rejects_prerequisite_cycle(client: TestClient, staff, make_course, auth_headers):
    intro = make_course("CS101")
    middle = make_course("CS201", prerequisite_ids=[intro.id])
    advanced = make_course("CS301", prerequisite_ids=[middle.id])

    response = client.put(f"/courses/{intro.id}", json={"prerequisite_ids": [middle.id]}, headers=auth_headers(staff))
    assert response.status_code == 400
    assert "cycle" in response.json()["detail"]

    response = client.put(f"/courses/{intro.id}", json={"prerequisite_ids": [advanced.id]}, headers=auth_headers(staff))
    assert response.status_code == 400

    response = client.put(f"/courses/{advanced.id}", json={"prerequisite_ids": [intro.id, middle.id]},
                          headers=auth_headers(staff))
    assert response.status_code == 200


def test_update_course_credits_frozen_while_enrolled(client: TestClient, staff, student, make_course, make_enrollment,
                                                    auth_headers):
    course = make_course("CS101", credits=3)
    idle = make_course("CS102", credits=3)
    enrollment = make_enrollment(student, course, EnrollmentStatus.ENROLLED)

    response = client.put(f"/courses/{course.id}", json={"credits": 4}, headers=auth_headers(staff))
    assert response.status_code == 400
    assert "credits" in response.json()["detail"]

    response = client.put(f"/courses/{course.id}", json={"credits": 3, "name": "Renamed"}, headers=auth_headers(staff))
    assert response.status_code == 200
    assert client.put(f"/courses/{idle.id}", json={"credits": 4}, headers=auth_headers(staff)).status_code == 200

    client.post(f"/enrollments/{enrollment.id}/drop", headers=auth_headers(student))
    response = client.put(f"/courses/{course.id}", json={"credits": 4}, headers=auth_headers(staff))
    assert response.status_code == 200
    assert response.json()["credits"] == 4


def test_update_course_below_taken_seats(client: TestClient, staff, make_course, auth_headers):
    course = make_course("CS101", max_seats=10, current_seats=5)

    response = client.put(f"/courses/{course.id}", json={"max_seats": 4}, headers=auth_headers(staff))
    assert response.status_code == 400

    response = client.put(f"/courses/{course.id}", json={"max_seats": 5}, headers=auth_headers(staff))
    assert response.status_code == 200


def test_update_course_not_found(client: TestClient, staff, auth_headers):
    response = client.put("/courses/9999", json={"name": "Updated"}, headers=auth_headers(staff))
    assert response.status_code == 404


def test_delete_course(client: TestClient, staff, make_course, auth_headers):
    course = make_course("CS101")

    response = client.delete(f"/courses/{course.id}", headers=auth_headers(staff))
    assert response.status_code == 204
    assert client.get(f"/courses/{course.id}").status_code == 404


def test_delete_course_with_enrollments(client: TestClient, staff, student, make_course, make_enrollment, auth_headers):
    course = make_course("CS101")
    make_enrollment(student, course, EnrollmentStatus.DROPPED)

    response = client.delete(f"/courses/{course.id}", headers=auth_headers(staff))
    assert response.status_code == 400


def test_delete_course_not_found(client: TestClient, staff, auth_headers):
    response = client.delete("/courses/9999", headers=auth_headers(staff))
    assert response.status_code == 404


# ============= ENROLLMENT TESTS =============

def test_student_enrolls_self(client: TestClient, session: Session, student, make_course, auth_headers):
    course = make_course("CS101", max_seats=2)

    response = client.post("/enrollments/", json={"course_id": course.id}, headers=auth_headers(student))
    assert response.status_code == 201
    data = response.json()
    assert data["student_id"] == student.id
    assert data["course_id"] == course.id
    assert data["status"] == "ENROLLED"
    assert data["grade"] is None

    session.refresh(course)
    assert course.current_seats == 1


def test_student_cannot_enroll_others(client: TestClient, student, other_student, make_course, auth_headers):
    course = make_course("CS101")

    response = client.post(
        "/enrollments/",
        json={"course_id": course.id, "student_id": other_student.id},
        headers=auth_headers(student),
    )
    assert response.status_code == 403


def test_staff_enrolls_student(client: TestClient, staff, student, make_course, auth_headers):
    course = make_course("CS101")

    response = client.post(
        "/enrollments/", json={"course_id": course.id, "student_id": student.id}, headers=auth_headers(staff)
    )
    assert response.status_code == 201
    assert response.json()["student_id"] == student.id


def test_enrollment_requires_login(client: TestClient, make_course):
    course = make_course("CS101")
    response = client.post("/enrollments/", json={"course_id": course.id})
    assert response.status_code == 401


def test_create_enrollment_student_not_found(client: TestClient, staff, professor, make_course, auth_headers):
    course = make_course("CS101")

    for student_id in (9999, professor.id):
        response = client.post(
            "/enrollments/", json={"student_id": student_id, "course_id": course.id}, headers=auth_headers(staff)
        )
        assert response.status_code == 404
        assert "student" in response.json()["detail"].lower()


def test_create_enrollment_course_not_found(client: TestClient, student, auth_headers):
    response = client.post("/enrollments/", json={"course_id": 9999}, headers=auth_headers(student))
    assert response.status_code == 404
    assert "course" in response.json()["detail"].lower()


def test_create_enrollment_inactive_course(client: TestClient, student, make_course, auth_headers):
    course = make_course("CS101", is_active=False)
    response = client.post("/enrollments/", json={"course_id": course.id}, headers=auth_headers(student))
    assert response.status_code == 400


def test_create_enrollment_duplicate(client: TestClient, student, make_course, auth_headers):
    course = make_course("CS101")
    client.post("/enrollments/", json={"course_id": course.id}, headers=auth_headers(student))

    response = client.post("/enrollments/", json={"course_id": course.id}, headers=auth_headers(student))
    assert response.status_code == 400
    data = response.json()
    assert data["error"] == "AlreadyEnrolledError"
    assert "already enrolled" in data["detail"].lower()


def test_create_enrollment_course_full(client: TestClient, session: Session, student, make_course, auth_headers):
    course = make_course("CS101", max_seats=1, current_seats=1)

    response = client.post("/enrollments/", json={"course_id": course.id}, headers=auth_headers(student))
    assert response.status_code == 400
    assert response.json()["error"] == "CourseFullError"
    session.refresh(course)
    assert course.current_seats == 1


def test_create_enrollment_missing_prerequisites(client: TestClient, student, make_course, auth_headers):
    intro = make_course("CS101")
    course = make_course("CS201", prerequisite_ids=[intro.id])

    response = client.post("/enrollments/", json={"course_id": course.id}, headers=auth_headers(student))
    assert response.status_code == 400
    data = response.json()
    assert data["error"] == "PrerequisitesNotMetError"
    assert data["missing_prerequisites"] == ["CS101"]


def test_create_enrollment_credit_limit(client: TestClient, student, make_course, auth_headers):
    for i in range(3):
        course = make_course(f"BIG{i}", credits=5)
        client.post("/enrollments/", json={"course_id": course.id}, headers=auth_headers(student))
    extra = make_course("CS400", credits=4)

    response = client.post("/enrollments/", json={"course_id": extra.id}, headers=auth_headers(student))
    assert response.status_code == 400
    assert response.json()["error"] == "CreditLimitExceededError"

    response = client.get(f"/students/{student.id}/credits", headers=auth_headers(student))
    assert response.json() == {"student_id": student.id, "enrolled_credits": 15, "max_credits": 18,
                               "remaining_credits": 3}


def test_read_enrollment(client: TestClient, student, other_student, professor, make_course, make_enrollment,
                         auth_headers):
    enrollment = make_enrollment(student, make_course("CS101"), EnrollmentStatus.ENROLLED)

    response = client.get(f"/enrollments/{enrollment.id}", headers=auth_headers(student))
    assert response.status_code == 200
    assert response.json()["id"] == enrollment.id

    assert client.get(f"/enrollments/{enrollment.id}", headers=auth_headers(professor)).status_code == 200
    assert client.get(f"/enrollments/{enrollment.id}", headers=auth_headers(other_student)).status_code == 403


def test_read_enrollment_not_found(client: TestClient, staff, auth_headers):
    response = client.get("/enrollments/9999", headers=auth_headers(staff))
    assert response.status_code == 404


def test_drop_enrollment(client: TestClient, session: Session, student, make_course, auth_headers):
    course = make_course("CS101", max_seats=5)
    enrollment = client.post("/enrollments/", json={"course_id": course.id}, headers=auth_headers(student)).json()

    response = client.post(f"/enrollments/{enrollment['id']}/drop", headers=auth_headers(student))
    assert response.status_code == 200
    assert response.json()["status"] == "DROPPED"
    session.refresh(course)
    assert course.current_seats == 0

    response = client.post(f"/enrollments/{enrollment['id']}/drop", headers=auth_headers(student))
    assert response.status_code == 400
    session.refresh(course)
    assert course.current_seats == 0


def test_drop_enrollment_of_other_student(client: TestClient, student, other_student, make_course, make_enrollment,
                                          auth_headers):
    enrollment = make_enrollment(other_student, make_course("CS101"), EnrollmentStatus.ENROLLED)

    response = client.post(f"/enrollments/{enrollment.id}/drop", headers=auth_headers(student))
    assert response.status_code == 403


def test_drop_enrollment_not_found(client: TestClient, staff, auth_headers):
    response = client.post("/enrollments/9999/drop", headers=auth_headers(staff))
    assert response.status_code == 404


def test_read_student_enrollments(client: TestClient, student, make_course, auth_headers):
    for code in ("CS101", "CS102"):
        course = make_course(code)
        client.post("/enrollments/", json={"course_id": course.id}, headers=auth_headers(student))

    response = client.get(f"/students/{student.id}/enrollments", headers=auth_headers(student))
    assert response.status_code == 200
    assert len(response.json()) == 2


def test_read_student_enrollments_not_found(client: TestClient, staff, auth_headers):
    response = client.get("/students/9999/enrollments", headers=auth_headers(staff))
    assert response.status_code == 404


def test_read_course_enrollments(client: TestClient, student, other_student, professor, make_course, auth_headers):
    course = make_course("CS101")
    for s in (student, other_student):
        client.post("/enrollments/", json={"course_id": course.id}, headers=auth_headers(s))

    response = client.get(f"/courses/{course.id}/enrollments", headers=auth_headers(professor))
    assert response.status_code == 200
    assert len(response.json()) == 2

    assert client.get(f"/courses/{course.id}/enrollments", headers=auth_headers(student)).status_code == 403


def test_read_course_enrollments_not_found(client: TestClient, staff, auth_headers):
    response = client.get("/courses/9999/enrollments", headers=auth_headers(staff))
    assert response.status_code == 404


def test_storage_failure_returns_500(client: TestClient, session: Session, student, make_course, auth_headers,
                                     monkeypatch):
    import enrollment as enrollment_service
    from sqlalchemy.exc import OperationalError

    def failing_claim(session, course_id):
        raise OperationalError("UPDATE course", {}, Exception("disk I/O error"))

    monkeypatch.setattr(enrollment_service, "_claim_seat", failing_claim)
    course = make_course("CS101")

    response = client.post("/enrollments/", json={"course_id": course.id}, headers=auth_headers(student))
    assert response.status_code == 500
    assert "No changes were saved" in response.json()["detail"]
    session.refresh(course)
    assert course.current_seats == 0


# ============= COURSEWORK & GRADING TESTS =============

@pytest.fixture
def graded_course(client: TestClient, session: Session, professor, student, make_course, auth_headers):
    """A course with weights 50/0/50, one scored assignment and one exam grade for ``student``"""
    course = make_course("CS101")
    client.post("/enrollments/", json={"course_id": course.id}, headers=auth_headers(student))
    headers = auth_headers(professor)

    response = client.put(
        f"/courses/{course.id}/grade-weights",
        json={"assignments_weight": 50, "quizzes_weight": 0, "exams_weight": 50},
        headers=headers,
    )
    assert response.status_code == 200

    assignment = client.post(
        f"/courses/{course.id}/assignments", json={"title": "HW1", "total_points": 20}, headers=headers
    ).json()
    submission = client.post(
        f"/assignments/{assignment['id']}/submissions", json={"content": "my work"}, headers=auth_headers(student)
    ).json()
    response = client.put(f"/submissions/{submission['id']}/score", json={"score": 18, "feedback": "Nice"},
                          headers=headers)
    assert response.status_code == 200

    exam = client.post(f"/courses/{course.id}/exams", json={"title": "Final", "total_points": 100},
                       headers=headers).json()
    response = client.post(f"/exams/{exam['id']}/grades", json={"student_id": student.id, "points_earned": 70},
                           headers=headers)
    assert response.status_code == 200
    return course


def test_course_grade(client: TestClient, graded_course: Course, student, auth_headers):
    response = client.get(f"/students/{student.id}/courses/{graded_course.id}/grade", headers=auth_headers(student))
    assert response.status_code == 200
    data = response.json()
    # (18 + 70) / (20 + 100)
    assert data["percentage"] == pytest.approx(73.333, rel=1e-3)
    # 90 * 0.5 + 70 * 0.5
    assert data["final_percentage"] == pytest.approx(80.0)
    assert data["letter_grade"] == "B"


def test_final_grades_and_override(client: TestClient, session: Session, graded_course: Course, professor, student,
                                   auth_headers):
    headers = auth_headers(professor)
    grades = client.get(f"/courses/{graded_course.id}/final-grades", headers=headers).json()
    assert len(grades) == 1
    assert grades[0]["calculated_grade"] == "B"
    assert grades[0]["overridden"] is False

    response = client.put(f"/enrollments/{grades[0]['enrollment_id']}/grade", json={"grade": "b+"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["grade"] == "B+"

    grades = client.get(f"/courses/{graded_course.id}/final-grades", headers=headers).json()
    assert grades[0]["current_grade"] == "B+"
    assert grades[0]["overridden"] is True


def test_invalid_letter_grade(client: TestClient, professor, student, make_course, make_enrollment, auth_headers):
    enrollment = make_enrollment(student, make_course("CS101"), EnrollmentStatus.ENROLLED)
    response = client.put(f"/enrollments/{enrollment.id}/grade", json={"grade": "E"}, headers=auth_headers(professor))
    assert response.status_code == 422


def test_students_cannot_grade(client: TestClient, student, make_course, make_enrollment, auth_headers):
    enrollment = make_enrollment(student, make_course("CS101"), EnrollmentStatus.ENROLLED)
    response = client.put(f"/enrollments/{enrollment.id}/grade", json={"grade": "A"}, headers=auth_headers(student))
    assert response.status_code == 403


def test_invalid_grade_weights(client: TestClient, professor, make_course, auth_headers):
    course = make_course("CS101")
    headers = auth_headers(professor)

    response = client.put(
        f"/courses/{course.id}/grade-weights",
        json={"assignments_weight": 50, "quizzes_weight": 30, "exams_weight": 30},
        headers=headers,
    )
    assert response.status_code == 400
    assert client.get(f"/courses/{course.id}/grade-weights", headers=headers).status_code == 404


def test_score_cannot_exceed_total(client: TestClient, graded_course: Course, professor, student, session: Session,
                                   auth_headers):
    headers = auth_headers(professor)
    exams = client.post(f"/courses/{graded_course.id}/exams", json={"title": "Quiz-like", "total_points": 10},
                        headers=headers).json()
    response = client.post(f"/exams/{exams['id']}/grades", json={"student_id": student.id, "points_earned": 11},
                           headers=headers)
    assert response.status_code == 400


def test_submission_requires_enrollment(client: TestClient, professor, other_student, make_course, auth_headers):
    course = make_course("CS101")
    assignment = client.post(
        f"/courses/{course.id}/assignments", json={"title": "HW1", "total_points": 10}, headers=auth_headers(professor)
    ).json()

    response = client.post(f"/assignments/{assignment['id']}/submissions", json={"content": "x"},
                           headers=auth_headers(other_student))
    assert response.status_code == 400


def test_graded_submission_cannot_be_resubmitted(client: TestClient, graded_course: Course, student, auth_headers):
    assignments = client.get(f"/courses/{graded_course.id}/assignments", headers=auth_headers(student)).json()

    response = client.post(f"/assignments/{assignments[0]['id']}/submissions", json={"content": "v2"},
                           headers=auth_headers(student))
    assert response.status_code == 400


def test_quiz_attempt_limit(client: TestClient, professor, student, make_course, make_enrollment, auth_headers):
    course = make_course("CS101")
    make_enrollment(student, course, EnrollmentStatus.ENROLLED)
    headers = auth_headers(professor)
    quiz = client.post(f"/courses/{course.id}/quizzes", json={"title": "Q1", "total_points": 10, "max_attempts": 2},
                       headers=headers).json()

    for score in (4, 7):
        response = client.post(f"/quizzes/{quiz['id']}/attempts", json={"student_id": student.id, "score": score},
                               headers=headers)
        assert response.status_code == 201
        assert response.json()["status"] == "COMPLETED"

    response = client.post(f"/quizzes/{quiz['id']}/attempts", json={"student_id": student.id, "score": 10},
                           headers=headers)
    assert response.status_code == 400


def test_coursework_grades_require_enrollment(client: TestClient, professor, student, make_course, auth_headers):
    course = make_course("CS101")
    headers = auth_headers(professor)
    quiz = client.post(f"/courses/{course.id}/quizzes", json={"title": "Q1", "total_points": 10},
                       headers=headers).json()
    exam = client.post(f"/courses/{course.id}/exams", json={"title": "Midterm", "total_points": 100},
                       headers=headers).json()

    response = client.post(f"/quizzes/{quiz['id']}/attempts", json={"student_id": student.id, "score": 5},
                           headers=headers)
    assert response.status_code == 400
    assert "not enrolled" in response.json()["detail"]

    response = client.post(f"/exams/{exam['id']}/grades", json={"student_id": student.id, "points_earned": 50},
                           headers=headers)
    assert response.status_code == 400
    assert "not enrolled" in response.json()["detail"]


# ============= TRANSCRIPT TESTS =============

def test_read_transcript(client: TestClient, student, make_course, make_enrollment, auth_headers):
    make_enrollment(student, make_course("CS101", credits=3, semester="Fall 2024"), EnrollmentStatus.COMPLETED, "A")
    make_enrollment(student, make_course("CS102", credits=4, semester="Fall 2024"), EnrollmentStatus.COMPLETED, "B")
    make_enrollment(student, make_course("CS201", semester="Spring 2025"), EnrollmentStatus.ENROLLED)

    response = client.get(f"/students/{student.id}/transcript", headers=auth_headers(student))
    assert response.status_code == 200
    data = response.json()
    assert data["student_name"] == "Alice Student"
    assert data["gpa"] == 3.5
    assert data["total_credits"] == 7
    assert {e["course_code"] for e in data["entries"]} == {"CS101", "CS102"}


def test_transcript_is_private(client: TestClient, student, other_student, staff, auth_headers):
    assert client.get(f"/students/{other_student.id}/transcript", headers=auth_headers(student)).status_code == 403
    assert client.get(f"/students/{other_student.id}/transcript", headers=auth_headers(staff)).status_code == 200


def test_transcript_not_found(client: TestClient, staff, auth_headers):
    assert client.get("/students/9999/transcript", headers=auth_headers(staff)).status_code == 404
