import os

# Keep test runs from writing api.log into the working tree
os.environ.setdefault("LOG_FILE", "")

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from main import app
from database import get_session
from auth import create_access_token, hash_password
from models import Course, Enrollment, EnrollmentStatus, User, UserRole

DEFAULT_PASSWORD = "password123"


# Create in-memory SQLite database for testing
@pytest.fixture(name="session")
def session_fixture():
    """Create a fresh database session for each test"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Create a test client with dependency override"""
    def get_session_override():
        return session

    app.dependency_overrides[get_session] = get_session_override
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session: Session):
    def _make_user(username, role=UserRole.STUDENT, full_name=None, password=DEFAULT_PASSWORD, is_active=True):
        user = User(
            username=username,
            email=f"{username}@example.edu",
            full_name=full_name or username.title(),
            role=role,
            hashed_password=hash_password(password),
            is_active=is_active,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_course(session: Session):
    def _make_course(code, credits=3, max_seats=30, current_seats=0, prerequisite_ids=None, semester=None,
                     name=None, **kwargs):
        course = Course(
            code=code,
            name=name or f"Course {code}",
            credits=credits,
            max_seats=max_seats,
            current_seats=current_seats,
            prerequisite_ids=prerequisite_ids or [],
            semester=semester,
            **kwargs,
        )
        session.add(course)
        session.commit()
        session.refresh(course)
        return course

    return _make_course


@pytest.fixture
def make_enrollment(session: Session):
    """Seed an enrollment row directly, bypassing admission control"""
    def _make_enrollment(student, course, status=EnrollmentStatus.COMPLETED, grade=None):
        enrollment = Enrollment(student_id=student.id, course_id=course.id, status=status, grade=grade)
        session.add(enrollment)
        session.commit()
        session.refresh(enrollment)
        return enrollment

    return _make_enrollment


@pytest.fixture
def student(make_user):
    return make_user("alice", full_name="Alice Student")


@pytest.fixture
def other_student(make_user):
    return make_user("bob", full_name="Bob Student")


@pytest.fixture
def professor(make_user):
    return make_user("prof", role=UserRole.PROFESSOR, full_name="Paula Professor")


@pytest.fixture
def staff(make_user):
    return make_user("registrar", role=UserRole.STAFF, full_name="Sam Staff")


@pytest.fixture
def admin(make_user):
    return make_user("root", role=UserRole.ADMIN, full_name="Ada Admin")


@pytest.fixture
def auth_headers():
    def _auth_headers(user):
        return {"Authorization": f"Bearer {create_access_token(user)}"}

    return _auth_headers
