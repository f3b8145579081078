from datetime import timedelta

import structlog

from database import utcnow
from schemas import EventCreate, MeetingCreate, StaffCreate
from storage import Storage

logger = structlog.get_logger()

DEMO_STAFF = [
    ("Anna Jónsdóttir", "+3545550101"),
    ("Bjarni Gunnarsson", "+3545550102"),
    ("Guðrún Magnúsdóttir", "+3545550103"),
    ("Helgi Sigurðsson", "+3545550104"),
]


def seed_database(storage: Storage) -> None:
    """Fill an empty store with one event, one meeting and a few staff."""
    if not storage.get_events():
        storage.create_event(
            EventCreate(
                title="Quarterly Fun Day",
                description="A day filled with games and laughter for all employees.",
                date=utcnow() + timedelta(days=7),
                location="Main Hall",
                status="planning",
                budget=50000,
                max_attendees=50,
            )
        )
        storage.create_meeting(
            MeetingCreate(
                title="Kickoff Planning Meeting",
                date=utcnow(),
                loop_link="https://loop.microsoft.com/example",
                minutes="Initial brainstorming session.",
                status="scheduled",
            )
        )
        logger.info("Seeded demo event and meeting")

    if not storage.get_staff():
        for name, phone in DEMO_STAFF:
            storage.create_staff(StaffCreate(name=name, phone=phone, is_active=True))
        logger.info("Seeded demo staff", count=len(DEMO_STAFF))
