"""Rooms, bookings, equipment allocation and maintenance tickets.

A room accepts a booking only while its status is AVAILABLE and no
CONFIRMED booking of the same room overlaps the requested half-open
interval [start, end). Equipment moves AVAILABLE -> ALLOCATED -> AVAILABLE
through allocations; the status flip is a conditional update, so two
allocations of the same item cannot both succeed.
"""
from sqlmodel import Session, select, func
from sqlalchemy import update, delete
from sqlalchemy.exc import SQLAlchemyError
from typing import List, Optional
from datetime import datetime
import logging

from models import (
    AllocationStatus,
    Booking,
    BookingStatus,
    Equipment,
    EquipmentAllocation,
    EquipmentStatus,
    MaintenanceTicket,
    Room,
    RoomStatus,
    TicketStatus,
)
from errors import (
    BookingConflictError,
    EquipmentUnavailableError,
    FacilityError,
    RoomUnavailableError,
    StorageError,
)

logger = logging.getLogger(__name__)


# ============= ROOMS =============

def get_rooms(session: Session, available_only: bool = False) -> List[Room]:
    statement = select(Room)
    if available_only:
        statement = statement.where(Room.status == RoomStatus.AVAILABLE)
    return list(session.exec(statement.order_by(Room.code)).all())


def get_room_by_code(session: Session, code: str) -> Optional[Room]:
    return session.exec(select(Room).where(Room.code == code)).first()


def upcoming_booking_count(session: Session, room_id: int, now: Optional[datetime] = None) -> int:
    now = now or datetime.utcnow()
    return session.exec(
        select(func.count(Booking.id)).where(
            Booking.room_id == room_id,
            Booking.status == BookingStatus.CONFIRMED,
            Booking.end_time > now,
        )
    ).one()


def delete_room(session: Session, room_id: int) -> bool:
    """Delete a room with its tickets and past bookings.

    Refused while the room still has upcoming confirmed bookings.
    """
    room = session.get(Room, room_id)
    if room is None:
        return False

    upcoming = upcoming_booking_count(session, room_id)
    if upcoming:
        raise FacilityError(f"Room {room.code} has {upcoming} upcoming booking(s); cancel them first")

    room_code = room.code
    try:
        session.connection().execute(delete(MaintenanceTicket).where(MaintenanceTicket.room_id == room_id))
        session.connection().execute(delete(Booking).where(Booking.room_id == room_id))
        session.delete(room)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Deleting room {room_code} rolled back: {str(e)}")
        raise StorageError(f"Could not delete room {room_code}") from e

    logger.info(f"Room {room_code} deleted")
    return True


# ============= BOOKINGS =============

def find_conflicting_bookings(
    session: Session, room_id: int, start: datetime, end: datetime, exclude_booking_id: Optional[int] = None
) -> List[Booking]:
    """Confirmed bookings of the room overlapping [start, end)"""
    statement = select(Booking).where(
        Booking.room_id == room_id,
        Booking.status == BookingStatus.CONFIRMED,
        Booking.start_time < end,
        Booking.end_time > start,
    )
    if exclude_booking_id is not None:
        statement = statement.where(Booking.id != exclude_booking_id)
    return list(session.exec(statement.order_by(Booking.start_time)).all())


def is_room_available(
    session: Session, room_id: int, start: datetime, end: datetime, exclude_booking_id: Optional[int] = None
) -> bool:
    room = session.get(Room, room_id)
    if room is None or room.status != RoomStatus.AVAILABLE:
        return False
    return not find_conflicting_bookings(session, room_id, start, end, exclude_booking_id)


def _check_slot(
    session: Session, room: Room, start: datetime, end: datetime,
    now: Optional[datetime], exclude_booking_id: Optional[int] = None
) -> None:
    if end <= start:
        raise FacilityError("End time must be after start time")
    if start < (now or datetime.utcnow()):
        raise FacilityError("Cannot book rooms in the past")
    if room.status != RoomStatus.AVAILABLE:
        raise RoomUnavailableError(room.code, room.status.value)

    conflicts = find_conflicting_bookings(session, room.id, start, end, exclude_booking_id)
    if conflicts:
        raise BookingConflictError(room.code, [b.id for b in conflicts])


def create_booking(
    session: Session,
    room: Room,
    user_id: int,
    start: datetime,
    end: datetime,
    purpose: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Booking:
    """Book ``room`` for [start, end).

    Raises:
        FacilityError: the interval is empty or starts in the past.
        RoomUnavailableError: the room is OCCUPIED or under MAINTENANCE.
        BookingConflictError: a confirmed booking overlaps the interval.
    """
    _check_slot(session, room, start, end, now)

    booking = Booking(room_id=room.id, user_id=user_id, start_time=start, end_time=end, purpose=purpose)
    session.add(booking)
    session.commit()
    session.refresh(booking)
    logger.info(f"Room {room.code} booked by user {user_id} from {start} to {end} (booking {booking.id})")
    return booking


def reschedule_booking(
    session: Session,
    booking: Booking,
    room: Room,
    start: datetime,
    end: datetime,
    purpose: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Booking:
    """Move a confirmed booking, possibly to another room"""
    if booking.status != BookingStatus.CONFIRMED:
        raise FacilityError("Can only update confirmed bookings")
    _check_slot(session, room, start, end, now, exclude_booking_id=booking.id)

    booking.room_id = room.id
    booking.start_time = start
    booking.end_time = end
    if purpose is not None:
        booking.purpose = purpose
    session.add(booking)
    session.commit()
    session.refresh(booking)
    return booking


def cancel_booking(session: Session, booking_id: int) -> bool:
    """Returns False when the booking is absent or already cancelled"""
    booking = session.get(Booking, booking_id)
    if booking is None or booking.status != BookingStatus.CONFIRMED:
        return False
    booking.status = BookingStatus.CANCELLED
    session.add(booking)
    session.commit()
    logger.info(f"Booking {booking_id} cancelled")
    return True


def get_bookings_for_room(session: Session, room_id: int, upcoming_only: bool = False) -> List[Booking]:
    statement = select(Booking).where(Booking.room_id == room_id, Booking.status == BookingStatus.CONFIRMED)
    if upcoming_only:
        statement = statement.where(Booking.end_time > datetime.utcnow())
    return list(session.exec(statement.order_by(Booking.start_time)).all())


def get_bookings_for_user(session: Session, user_id: int) -> List[Booking]:
    return list(
        session.exec(
            select(Booking).where(Booking.user_id == user_id).order_by(Booking.start_time.desc())
        ).all()
    )


# ============= EQUIPMENT =============

def add_equipment(
    session: Session,
    equipment_type: str,
    serial_number: Optional[str] = None,
    location: Optional[str] = None,
    notes: Optional[str] = None,
) -> Equipment:
    equipment = Equipment(
        equipment_type=equipment_type.strip(),
        serial_number=serial_number,
        location=location,
        notes=notes,
    )
    session.add(equipment)
    session.commit()
    session.refresh(equipment)
    logger.info(f"Equipment {equipment.id} ({equipment.equipment_type}) added")
    return equipment


def get_equipment(
    session: Session, equipment_type: Optional[str] = None, status: Optional[EquipmentStatus] = None
) -> List[Equipment]:
    statement = select(Equipment)
    if equipment_type:
        statement = statement.where(Equipment.equipment_type == equipment_type)
    if status is not None:
        statement = statement.where(Equipment.status == status)
    return list(session.exec(statement.order_by(Equipment.id)).all())


def get_equipment_types(session: Session) -> List[str]:
    return list(session.exec(select(Equipment.equipment_type).distinct().order_by(Equipment.equipment_type)).all())


def set_equipment_status(session: Session, equipment: Equipment, status: EquipmentStatus) -> Equipment:
    """Change status outside the allocation cycle, e.g. send for repair or retire"""
    if status == EquipmentStatus.ALLOCATED:
        raise FacilityError("Allocate equipment through an allocation, not a status change")
    if equipment.status == EquipmentStatus.ALLOCATED:
        raise FacilityError(f"Equipment {equipment.id} is allocated; return it first")

    equipment.status = status
    session.add(equipment)
    session.commit()
    session.refresh(equipment)
    return equipment


def allocate_equipment(
    session: Session,
    equipment: Equipment,
    allocated_by_id: int,
    user_id: Optional[int] = None,
    department: Optional[str] = None,
    notes: Optional[str] = None,
) -> EquipmentAllocation:
    """Allocate AVAILABLE equipment to a user or a department"""
    if user_id is None and not department:
        raise FacilityError("Either user ID or department must be specified")
    if equipment.status != EquipmentStatus.AVAILABLE:
        raise EquipmentUnavailableError(equipment.id, equipment.status.value)

    equipment_id = equipment.id
    try:
        allocation = EquipmentAllocation(
            equipment_id=equipment_id,
            allocated_to_user_id=user_id,
            department=department,
            allocated_by_id=allocated_by_id,
            notes=notes,
        )
        session.add(allocation)
        session.flush()
        allocation_id = allocation.id

        claimed = session.connection().execute(
            update(Equipment)
            .where(Equipment.id == equipment_id, Equipment.status == EquipmentStatus.AVAILABLE)
            .values(status=EquipmentStatus.ALLOCATED)
        )
        if claimed.rowcount != 1:
            session.rollback()
            raise EquipmentUnavailableError(equipment_id, EquipmentStatus.ALLOCATED.value)

        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Allocation of equipment {equipment_id} rolled back: {str(e)}")
        raise StorageError(f"Could not allocate equipment {equipment_id}") from e

    logger.info(f"Equipment {equipment_id} allocated to {department or f'user {user_id}'}")
    return session.get(EquipmentAllocation, allocation_id)


def return_equipment(session: Session, allocation_id: int) -> EquipmentAllocation:
    allocation = session.get(EquipmentAllocation, allocation_id)
    if allocation is None:
        raise FacilityError("Allocation not found")
    if allocation.status == AllocationStatus.RETURNED:
        raise FacilityError("Equipment has already been returned")

    equipment_id = allocation.equipment_id
    try:
        allocation.status = AllocationStatus.RETURNED
        allocation.return_date = datetime.utcnow()
        session.add(allocation)
        session.flush()
        session.connection().execute(
            update(Equipment).where(Equipment.id == equipment_id).values(status=EquipmentStatus.AVAILABLE)
        )
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Return of allocation {allocation_id} rolled back: {str(e)}")
        raise StorageError(f"Could not return allocation {allocation_id}") from e

    logger.info(f"Equipment {equipment_id} returned (allocation {allocation_id})")
    return session.get(EquipmentAllocation, allocation_id)


def get_active_allocations(
    session: Session, user_id: Optional[int] = None, department: Optional[str] = None
) -> List[EquipmentAllocation]:
    statement = select(EquipmentAllocation).where(EquipmentAllocation.status == AllocationStatus.ACTIVE)
    if user_id is not None:
        statement = statement.where(EquipmentAllocation.allocated_to_user_id == user_id)
    if department is not None:
        statement = statement.where(EquipmentAllocation.department == department)
    return list(session.exec(statement.order_by(EquipmentAllocation.allocation_date.desc())).all())


# ============= MAINTENANCE =============

def create_ticket(session: Session, room: Room, reporter_id: int, description: str) -> MaintenanceTicket:
    ticket = MaintenanceTicket(room_id=room.id, reporter_id=reporter_id, description=description.strip())
    session.add(ticket)
    session.commit()
    session.refresh(ticket)
    logger.info(f"Maintenance ticket {ticket.id} opened for room {room.code}")
    return ticket


def get_tickets(
    session: Session, status: Optional[TicketStatus] = None, room_id: Optional[int] = None
) -> List[MaintenanceTicket]:
    statement = select(MaintenanceTicket)
    if status is not None:
        statement = statement.where(MaintenanceTicket.status == status)
    if room_id is not None:
        statement = statement.where(MaintenanceTicket.room_id == room_id)
    return list(session.exec(statement.order_by(MaintenanceTicket.created_at.desc(), MaintenanceTicket.id.desc())).all())


def assign_ticket(session: Session, ticket: MaintenanceTicket, staff_id: int) -> MaintenanceTicket:
    """Hand a ticket to a staff member; a NEW ticket moves to IN_PROGRESS"""
    if ticket.status == TicketStatus.RESOLVED:
        raise FacilityError("Resolved tickets cannot be reassigned")
    ticket.assigned_staff_id = staff_id
    ticket.status = TicketStatus.IN_PROGRESS
    session.add(ticket)
    session.commit()
    session.refresh(ticket)
    return ticket


def update_ticket_status(session: Session, ticket: MaintenanceTicket, status: TicketStatus) -> MaintenanceTicket:
    if ticket.status == TicketStatus.RESOLVED and status != TicketStatus.RESOLVED:
        # Reopening clears the resolution time
        ticket.resolved_at = None
    if status == TicketStatus.RESOLVED and ticket.status != TicketStatus.RESOLVED:
        ticket.resolved_at = datetime.utcnow()
    ticket.status = status
    session.add(ticket)
    session.commit()
    session.refresh(ticket)
    logger.info(f"Maintenance ticket {ticket.id} is now {status.value}")
    return ticket
