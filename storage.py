"""Persistence interface shared by the relational and document backends.

Every operation returns models from ``schemas`` so routers never see
backend-specific rows. Lookups and updates of a missing id return ``None``;
deletes of a missing id return ``False``.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterable, Iterator, Optional

from fastapi import Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import database
import schemas
from config import get_settings
from database import SessionLocal, get_db


class DuplicateUsernameError(Exception):
    pass


class Storage(ABC):
    # Users
    @abstractmethod
    def get_user(self, user_id: int) -> Optional[schemas.User]: ...

    @abstractmethod
    def get_user_by_username(self, username: str) -> Optional[schemas.User]: ...

    @abstractmethod
    def create_user(self, username: str, password_hash: str) -> schemas.User:
        """Raises DuplicateUsernameError when the username is taken."""

    # Events
    @abstractmethod
    def get_events(self) -> list[schemas.Event]: ...

    @abstractmethod
    def get_event(self, event_id: int) -> Optional[schemas.Event]: ...

    @abstractmethod
    def create_event(self, event: schemas.EventCreate) -> schemas.Event: ...

    @abstractmethod
    def update_event(self, event_id: int, updates: dict) -> Optional[schemas.Event]: ...

    @abstractmethod
    def delete_event(self, event_id: int) -> bool:
        """Delete an event with its expenses and SMS notifications."""

    # Meetings
    @abstractmethod
    def get_meetings(self) -> list[schemas.Meeting]: ...

    @abstractmethod
    def get_meeting(self, meeting_id: int) -> Optional[schemas.Meeting]: ...

    @abstractmethod
    def create_meeting(self, meeting: schemas.MeetingCreate) -> schemas.Meeting: ...

    @abstractmethod
    def update_meeting(self, meeting_id: int, updates: dict) -> Optional[schemas.Meeting]: ...

    @abstractmethod
    def delete_meeting(self, meeting_id: int) -> bool: ...

    # Tasks
    @abstractmethod
    def get_tasks(self) -> list[schemas.Task]: ...

    @abstractmethod
    def create_task(self, task: schemas.TaskCreate) -> schemas.Task: ...

    @abstractmethod
    def update_task(self, task_id: int, updates: dict) -> Optional[schemas.Task]: ...

    @abstractmethod
    def delete_task(self, task_id: int) -> bool: ...

    # Staff
    @abstractmethod
    def get_staff(self) -> list[schemas.Staff]: ...

    @abstractmethod
    def get_active_staff(self) -> list[schemas.Staff]: ...

    @abstractmethod
    def create_staff(self, staff: schemas.StaffCreate) -> schemas.Staff: ...

    @abstractmethod
    def update_staff(self, staff_id: int, updates: dict) -> Optional[schemas.Staff]: ...

    @abstractmethod
    def delete_staff(self, staff_id: int) -> bool:
        """Delete a staff member together with their SMS notifications."""

    # SMS notifications
    @abstractmethod
    def get_sms_notifications(self, event_id: int) -> list[schemas.SmsNotification]: ...

    @abstractmethod
    def create_sms_notifications(
        self, notifications: Iterable[schemas.SmsNotificationCreate]
    ) -> list[schemas.SmsNotification]: ...

    @abstractmethod
    def update_sms_notification(
        self, notification_id: int, updates: dict
    ) -> Optional[schemas.SmsNotification]: ...

    # Expenses
    @abstractmethod
    def get_expenses(self, event_id: int) -> list[schemas.Expense]: ...

    @abstractmethod
    def create_expense(self, event_id: int, expense: schemas.ExpenseCreate) -> schemas.Expense: ...

    @abstractmethod
    def update_expense(self, expense_id: int, updates: dict) -> Optional[schemas.Expense]: ...

    @abstractmethod
    def delete_expense(self, expense_id: int) -> bool: ...

    # Event templates
    @abstractmethod
    def get_event_templates(self) -> list[schemas.EventTemplate]: ...

    @abstractmethod
    def get_event_template(self, template_id: int) -> Optional[schemas.EventTemplate]: ...

    @abstractmethod
    def create_event_template(self, template: schemas.EventTemplateCreate) -> schemas.EventTemplate: ...

    @abstractmethod
    def update_event_template(self, template_id: int, updates: dict) -> Optional[schemas.EventTemplate]: ...

    @abstractmethod
    def delete_event_template(self, template_id: int) -> bool: ...


class SqlStorage(Storage):
    """SQLAlchemy-backed storage; one instance per session."""

    def __init__(self, db: Session):
        self.db = db

    def _add(self, row, schema):
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return schema.model_validate(row)

    def _update(self, model, row_id: int, updates: dict, schema):
        row = self.db.get(model, row_id)
        if row is None:
            return None
        for key, value in updates.items():
            setattr(row, key, value)
        self.db.commit()
        self.db.refresh(row)
        return schema.model_validate(row)

    def _delete(self, model, row_id: int) -> bool:
        row = self.db.get(model, row_id)
        if row is None:
            return False
        self.db.delete(row)
        self.db.commit()
        return True

    # Users
    def get_user(self, user_id):
        row = self.db.get(database.User, user_id)
        return schemas.User.model_validate(row) if row else None

    def get_user_by_username(self, username):
        row = self.db.query(database.User).filter(database.User.username == username).first()
        return schemas.User.model_validate(row) if row else None

    def create_user(self, username, password_hash):
        try:
            return self._add(database.User(username=username, password=password_hash), schemas.User)
        except IntegrityError:
            self.db.rollback()
            raise DuplicateUsernameError(username)

    # Events
    def get_events(self):
        rows = self.db.query(database.Event).order_by(database.Event.date, database.Event.id).all()
        return [schemas.Event.model_validate(row) for row in rows]

    def get_event(self, event_id):
        row = self.db.get(database.Event, event_id)
        return schemas.Event.model_validate(row) if row else None

    def create_event(self, event):
        return self._add(database.Event(**event.model_dump()), schemas.Event)

    def update_event(self, event_id, updates):
        return self._update(database.Event, event_id, updates, schemas.Event)

    def delete_event(self, event_id):
        row = self.db.get(database.Event, event_id)
        if row is None:
            return False
        self.db.query(database.Expense).filter(database.Expense.event_id == event_id).delete()
        self.db.query(database.SmsNotification).filter(
            database.SmsNotification.event_id == event_id
        ).delete()
        self.db.query(database.Task).filter(database.Task.event_id == event_id).update(
            {database.Task.event_id: None}
        )
        self.db.delete(row)
        self.db.commit()
        return True

    # Meetings
    def get_meetings(self):
        rows = self.db.query(database.Meeting).order_by(database.Meeting.date, database.Meeting.id).all()
        return [schemas.Meeting.model_validate(row) for row in rows]

    def get_meeting(self, meeting_id):
        row = self.db.get(database.Meeting, meeting_id)
        return schemas.Meeting.model_validate(row) if row else None

    def create_meeting(self, meeting):
        return self._add(database.Meeting(**meeting.model_dump()), schemas.Meeting)

    def update_meeting(self, meeting_id, updates):
        return self._update(database.Meeting, meeting_id, updates, schemas.Meeting)

    def delete_meeting(self, meeting_id):
        row = self.db.get(database.Meeting, meeting_id)
        if row is None:
            return False
        self.db.query(database.Task).filter(database.Task.meeting_id == meeting_id).update(
            {database.Task.meeting_id: None}
        )
        self.db.delete(row)
        self.db.commit()
        return True

    # Tasks
    def get_tasks(self):
        rows = self.db.query(database.Task).order_by(database.Task.id).all()
        return [schemas.Task.model_validate(row) for row in rows]

    def create_task(self, task):
        return self._add(database.Task(**task.model_dump()), schemas.Task)

    def update_task(self, task_id, updates):
        return self._update(database.Task, task_id, updates, schemas.Task)

    def delete_task(self, task_id):
        return self._delete(database.Task, task_id)

    # Staff
    def get_staff(self):
        rows = self.db.query(database.Staff).order_by(database.Staff.name, database.Staff.id).all()
        return [schemas.Staff.model_validate(row) for row in rows]

    def get_active_staff(self):
        rows = (
            self.db.query(database.Staff)
            .filter(database.Staff.is_active.is_(True))
            .order_by(database.Staff.name, database.Staff.id)
            .all()
        )
        return [schemas.Staff.model_validate(row) for row in rows]

    def create_staff(self, staff):
        return self._add(database.Staff(**staff.model_dump()), schemas.Staff)

    def update_staff(self, staff_id, updates):
        return self._update(database.Staff, staff_id, updates, schemas.Staff)

    def delete_staff(self, staff_id):
        row = self.db.get(database.Staff, staff_id)
        if row is None:
            return False
        self.db.query(database.SmsNotification).filter(
            database.SmsNotification.staff_id == staff_id
        ).delete()
        self.db.delete(row)
        self.db.commit()
        return True

    # SMS notifications
    def get_sms_notifications(self, event_id):
        rows = (
            self.db.query(database.SmsNotification)
            .filter(database.SmsNotification.event_id == event_id)
            .order_by(database.SmsNotification.id)
            .all()
        )
        return [schemas.SmsNotification.model_validate(row) for row in rows]

    def create_sms_notifications(self, notifications):
        rows = [database.SmsNotification(**n.model_dump()) for n in notifications]
        self.db.add_all(rows)
        self.db.commit()
        for row in rows:
            self.db.refresh(row)
        return [schemas.SmsNotification.model_validate(row) for row in rows]

    def update_sms_notification(self, notification_id, updates):
        return self._update(
            database.SmsNotification, notification_id, updates, schemas.SmsNotification
        )

    # Expenses
    def get_expenses(self, event_id):
        rows = (
            self.db.query(database.Expense)
            .filter(database.Expense.event_id == event_id)
            .order_by(database.Expense.id)
            .all()
        )
        return [schemas.Expense.model_validate(row) for row in rows]

    def create_expense(self, event_id, expense):
        return self._add(database.Expense(event_id=event_id, **expense.model_dump()), schemas.Expense)

    def update_expense(self, expense_id, updates):
        return self._update(database.Expense, expense_id, updates, schemas.Expense)

    def delete_expense(self, expense_id):
        return self._delete(database.Expense, expense_id)

    # Event templates
    def get_event_templates(self):
        rows = self.db.query(database.EventTemplate).order_by(database.EventTemplate.id).all()
        return [schemas.EventTemplate.model_validate(row) for row in rows]

    def get_event_template(self, template_id):
        row = self.db.get(database.EventTemplate, template_id)
        return schemas.EventTemplate.model_validate(row) if row else None

    def create_event_template(self, template):
        return self._add(database.EventTemplate(**template.model_dump()), schemas.EventTemplate)

    def update_event_template(self, template_id, updates):
        return self._update(database.EventTemplate, template_id, updates, schemas.EventTemplate)

    def delete_event_template(self, template_id):
        row = self.db.get(database.EventTemplate, template_id)
        if row is None:
            return False
        self.db.query(database.Event).filter(database.Event.template_id == template_id).update(
            {database.Event.template_id: None}
        )
        self.db.delete(row)
        self.db.commit()
        return True


def get_storage(db: Session = Depends(get_db)) -> Storage:
    if get_settings().storage_backend == "document":
        from document_storage import get_document_storage

        return get_document_storage()
    return SqlStorage(db)


@contextmanager
def open_storage() -> Iterator[Storage]:
    """Storage for work outside a request, such as scheduled jobs."""
    if get_settings().storage_backend == "document":
        from document_storage import get_document_storage

        yield get_document_storage()
        return
    with SessionLocal() as db:
        yield SqlStorage(db)
