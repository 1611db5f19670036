from sqlmodel import Session, select, func
from sqlalchemy import case, or_
from sqlalchemy.exc import IntegrityError
from typing import List, Optional
from datetime import datetime
import logging

from models import (
    Announcement,
    AnnouncementPriority,
    AnnouncementRead,
    AnnouncementStatus,
    UserRole,
)

logger = logging.getLogger(__name__)

PRIORITY_ORDER = {
    AnnouncementPriority.URGENT: 1,
    AnnouncementPriority.HIGH: 2,
    AnnouncementPriority.NORMAL: 3,
    AnnouncementPriority.LOW: 4,
}


def _visible_to(role: UserRole, now: datetime):
    return (
        Announcement.is_active == True,  # noqa: E712
        Announcement.is_archived == False,  # noqa: E712
        Announcement.status == AnnouncementStatus.PUBLISHED,
        Announcement.publish_date <= now,
        or_(Announcement.target_role.is_(None), Announcement.target_role == role),
        or_(Announcement.expiry_date.is_(None), Announcement.expiry_date >= now),
    )


def _read_ids(session: Session, user_id: int) -> set:
    return set(
        session.exec(
            select(AnnouncementRead.announcement_id).where(AnnouncementRead.user_id == user_id)
        ).all()
    )


def get_announcements_for_user(
    session: Session, user_id: int, role: UserRole, include_read: bool = True
) -> List[Announcement]:
    """Announcements a user may see, most urgent first then newest first"""
    priority_rank = case(
        *[(Announcement.priority == p, rank) for p, rank in PRIORITY_ORDER.items()],
        else_=len(PRIORITY_ORDER) + 1,
    )
    announcements = session.exec(
        select(Announcement)
        .where(*_visible_to(role, datetime.utcnow()))
        .order_by(priority_rank, Announcement.publish_date.desc(), Announcement.id.desc())
    ).all()

    if include_read:
        return list(announcements)
    read = _read_ids(session, user_id)
    return [a for a in announcements if a.id not in read]


def get_all_announcements(session: Session, include_archived: bool = False) -> List[Announcement]:
    statement = select(Announcement).where(Announcement.is_active == True)  # noqa: E712
    if not include_archived:
        statement = statement.where(Announcement.is_archived == False)  # noqa: E712
    return list(session.exec(statement.order_by(Announcement.created_at.desc())).all())


def get_unread_count(session: Session, user_id: int, role: UserRole) -> int:
    read_subquery = select(AnnouncementRead.announcement_id).where(AnnouncementRead.user_id == user_id)
    return session.exec(
        select(func.count(Announcement.id)).where(
            *_visible_to(role, datetime.utcnow()),
            Announcement.id.not_in(read_subquery),
        )
    ).one()


def is_read(session: Session, user_id: int, announcement_id: int) -> bool:
    return session.exec(
        select(AnnouncementRead.id).where(
            AnnouncementRead.user_id == user_id,
            AnnouncementRead.announcement_id == announcement_id,
        )
    ).first() is not None


def mark_as_read(session: Session, user_id: int, announcement_id: int) -> bool:
    """Record a read receipt; marking twice is not an error"""
    if is_read(session, user_id, announcement_id):
        return True
    try:
        session.add(AnnouncementRead(announcement_id=announcement_id, user_id=user_id))
        session.commit()
    except IntegrityError:
        # Another request recorded the same receipt first
        session.rollback()
    return True


def create_announcement(
    session: Session,
    created_by_id: int,
    title: str,
    content: str,
    target_role: Optional[UserRole] = None,
    priority: AnnouncementPriority = AnnouncementPriority.NORMAL,
    status: AnnouncementStatus = AnnouncementStatus.PUBLISHED,
    publish_date: Optional[datetime] = None,
    expiry_date: Optional[datetime] = None,
) -> Announcement:
    announcement = Announcement(
        title=title,
        content=content,
        target_role=target_role,
        priority=priority,
        status=status,
        created_by_id=created_by_id,
        publish_date=publish_date or datetime.utcnow(),
        expiry_date=expiry_date,
    )
    session.add(announcement)
    session.commit()
    session.refresh(announcement)
    logger.info(f"Announcement {announcement.id} created by user {created_by_id}")
    return announcement


def update_announcement(session: Session, announcement_id: int, modified_by_id: int, **changes) -> Optional[Announcement]:
    announcement = session.get(Announcement, announcement_id)
    if announcement is None or not announcement.is_active:
        return None
    for key, value in changes.items():
        setattr(announcement, key, value)
    announcement.last_modified_at = datetime.utcnow()
    announcement.last_modified_by_id = modified_by_id
    session.add(announcement)
    session.commit()
    session.refresh(announcement)
    return announcement


def archive_announcement(session: Session, announcement_id: int) -> bool:
    announcement = session.get(Announcement, announcement_id)
    if announcement is None or not announcement.is_active:
        return False
    announcement.is_archived = True
    session.add(announcement)
    session.commit()
    return True


def delete_announcement(session: Session, announcement_id: int) -> bool:
    """Soft delete: the row stays but is never shown again"""
    announcement = session.get(Announcement, announcement_id)
    if announcement is None or not announcement.is_active:
        return False
    announcement.is_active = False
    session.add(announcement)
    session.commit()
    return True
