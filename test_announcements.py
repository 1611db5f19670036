from datetime import datetime, timedelta

from fastapi.testclient import TestClient
from sqlmodel import Session

import announcements as announcement_service
from models import AnnouncementPriority, AnnouncementStatus, UserRole


def _titles(items):
    return [a.title for a in items]


def test_visibility_rules(session: Session, staff, student):
    now = datetime.utcnow()
    create = announcement_service.create_announcement
    create(session, staff.id, "Everyone", "Campus closed")
    create(session, staff.id, "Students", "Register now", target_role=UserRole.STUDENT)
    create(session, staff.id, "Professors", "Submit grades", target_role=UserRole.PROFESSOR)
    create(session, staff.id, "Draft", "Not yet", status=AnnouncementStatus.DRAFT)
    create(session, staff.id, "Expired", "Old news", expiry_date=now - timedelta(days=1))
    create(session, staff.id, "Future expiry", "Still valid", expiry_date=now + timedelta(days=1))
    create(session, staff.id, "Scheduled", "Tomorrow", publish_date=now + timedelta(days=1))
    archived = create(session, staff.id, "Archived", "Gone")
    announcement_service.archive_announcement(session, archived.id)
    deleted = create(session, staff.id, "Deleted", "Gone too")
    announcement_service.delete_announcement(session, deleted.id)

    visible = announcement_service.get_announcements_for_user(session, student.id, UserRole.STUDENT)

    assert sorted(_titles(visible)) == ["Everyone", "Future expiry", "Students"]


def test_priority_then_newest_first(session: Session, staff, student):
    base = datetime.utcnow() - timedelta(days=3)
    create = announcement_service.create_announcement
    create(session, staff.id, "Old normal", "x", publish_date=base)
    create(session, staff.id, "New normal", "x", publish_date=base + timedelta(days=1))
    create(session, staff.id, "Urgent", "x", priority=AnnouncementPriority.URGENT, publish_date=base)
    create(session, staff.id, "Low", "x", priority=AnnouncementPriority.LOW, publish_date=base + timedelta(days=2))
    create(session, staff.id, "High", "x", priority=AnnouncementPriority.HIGH, publish_date=base)

    visible = announcement_service.get_announcements_for_user(session, student.id, UserRole.STUDENT)

    assert _titles(visible) == ["Urgent", "High", "New normal", "Old normal", "Low"]


def test_mark_as_read_is_idempotent(session: Session, staff, student):
    first = announcement_service.create_announcement(session, staff.id, "First", "x")
    announcement_service.create_announcement(session, staff.id, "Second", "x")
    assert announcement_service.get_unread_count(session, student.id, UserRole.STUDENT) == 2

    assert announcement_service.mark_as_read(session, student.id, first.id)
    assert announcement_service.mark_as_read(session, student.id, first.id)

    assert announcement_service.is_read(session, student.id, first.id)
    assert not announcement_service.is_read(session, staff.id, first.id)
    assert announcement_service.get_unread_count(session, student.id, UserRole.STUDENT) == 1
    unread = announcement_service.get_announcements_for_user(
        session, student.id, UserRole.STUDENT, include_read=False
    )
    assert _titles(unread) == ["Second"]


def test_update_records_modifier(session: Session, staff, admin):
    announcement = announcement_service.create_announcement(session, staff.id, "Title", "Body")

    updated = announcement_service.update_announcement(
        session, announcement.id, admin.id, title="New title", priority=AnnouncementPriority.HIGH
    )

    assert updated.title == "New title"
    assert updated.content == "Body"
    assert updated.priority == AnnouncementPriority.HIGH
    assert updated.last_modified_by_id == admin.id
    assert updated.last_modified_at is not None


def test_deleted_announcement_cannot_be_changed(session: Session, staff):
    announcement = announcement_service.create_announcement(session, staff.id, "Title", "Body")
    assert announcement_service.delete_announcement(session, announcement.id)

    assert announcement_service.update_announcement(session, announcement.id, staff.id, title="x") is None
    assert not announcement_service.archive_announcement(session, announcement.id)
    assert not announcement_service.delete_announcement(session, announcement.id)


def test_all_announcements_for_staff(session: Session, staff):
    announcement_service.create_announcement(session, staff.id, "Draft", "x", status=AnnouncementStatus.DRAFT)
    archived = announcement_service.create_announcement(session, staff.id, "Archived", "x")
    announcement_service.archive_announcement(session, archived.id)

    assert _titles(announcement_service.get_all_announcements(session)) == ["Draft"]
    assert len(announcement_service.get_all_announcements(session, include_archived=True)) == 2


# ============= API TESTS =============

def test_announcement_flow(client: TestClient, staff, student, auth_headers):
    response = client.post(
        "/announcements/",
        json={"title": "Exam week", "content": "Good luck", "target_role": "STUDENT", "priority": "HIGH"},
        headers=auth_headers(staff),
    )
    assert response.status_code == 201
    data = response.json()
    assert data["created_by_id"] == staff.id
    assert data["target_role"] == "STUDENT"
    announcement_id = data["id"]

    response = client.get("/announcements/unread-count", headers=auth_headers(student))
    assert response.json() == {"unread": 1}

    response = client.post(f"/announcements/{announcement_id}/read", headers=auth_headers(student))
    assert response.status_code == 204
    response = client.get("/announcements/unread-count", headers=auth_headers(student))
    assert response.json() == {"unread": 0}

    response = client.get("/announcements/?include_read=false", headers=auth_headers(student))
    assert response.json() == []


def test_students_cannot_publish(client: TestClient, student, auth_headers):
    response = client.post(
        "/announcements/", json={"title": "Party", "content": "Tonight"}, headers=auth_headers(student)
    )
    assert response.status_code == 403


def test_update_clears_target_role(client: TestClient, session: Session, staff, professor, auth_headers):
    announcement = announcement_service.create_announcement(
        session, staff.id, "Staff only", "x", target_role=UserRole.STAFF
    )

    response = client.put(
        f"/announcements/{announcement.id}", json={"target_role": None}, headers=auth_headers(staff)
    )

    assert response.status_code == 200
    assert response.json()["target_role"] is None
    response = client.get("/announcements/", headers=auth_headers(professor))
    assert [a["title"] for a in response.json()] == ["Staff only"]


def test_archive_and_delete_unknown(client: TestClient, staff, auth_headers):
    assert client.post("/announcements/9999/archive", headers=auth_headers(staff)).status_code == 404
    assert client.delete("/announcements/9999", headers=auth_headers(staff)).status_code == 404
    assert client.post("/announcements/9999/read", headers=auth_headers(staff)).status_code == 404
