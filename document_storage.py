"""
Document-store backend.

One collection per entity, each a mapping of string id to document, with
auto-increment ids kept in a ``_counters`` collection. The whole store is
persisted as a single JSON file, or kept in memory when no path is set.
"""

import json
import threading
from pathlib import Path
from typing import Optional

import structlog

import schemas
from config import get_settings
from database import utcnow
from storage import DuplicateUsernameError, Storage

logger = structlog.get_logger()

COLLECTIONS = {
    "users": "users",
    "events": "events",
    "meetings": "meetings",
    "tasks": "tasks",
    "staff": "staff",
    "sms_notifications": "sms_notifications",
    "expenses": "expenses",
    "event_templates": "event_templates",
}
COUNTERS = "_counters"


def _fresh_db():
    db = {name: {} for name in COLLECTIONS.values()}
    db[COUNTERS] = {}
    return db


class DocumentStorage(Storage):
    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else None
        self._lock = threading.RLock()
        self._db = self._load()

    def _load(self):
        db = _fresh_db()
        if self.path is None or not self.path.exists():
            return db
        try:
            with open(self.path, encoding="utf-8") as f:
                stored = json.load(f)
        except json.JSONDecodeError as exc:
            # Keep the damaged file for recovery
            aside = self.path.with_name(f"{self.path.name}.corrupt-{utcnow():%Y%m%d%H%M%S%f}")
            self.path.replace(aside)
            logger.error(
                "Document store unreadable, moved aside and starting empty",
                path=str(self.path),
                moved_to=str(aside),
                error=str(exc),
            )
            return db
        for key in db:
            db[key].update(stored.get(key, {}))
        return db

    def _save(self):
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self._db, f, indent=2)
        tmp_path.replace(self.path)

    def _next_id(self, collection: str) -> int:
        counters = self._db[COUNTERS]
        counters[collection] = counters.get(collection, 0) + 1
        return counters[collection]

    def _all(self, collection, schema, **where):
        with self._lock:
            docs = list(self._db[collection].values())
        return [
            schema.model_validate(doc)
            for doc in docs
            if all(doc.get(key) == value for key, value in where.items())
        ]

    def _get(self, collection, doc_id, schema):
        with self._lock:
            doc = self._db[collection].get(str(doc_id))
        return schema.model_validate(doc) if doc is not None else None

    def _insert(self, collection, fields: dict, schema):
        with self._lock:
            doc_id = self._next_id(collection)
            model = schema.model_validate({**fields, "id": doc_id, "created_at": utcnow()})
            self._db[collection][str(doc_id)] = model.model_dump(mode="json")
            self._save()
        return model

    def _update(self, collection, doc_id, updates: dict, schema):
        with self._lock:
            doc = self._db[collection].get(str(doc_id))
            if doc is None:
                return None
            model = schema.model_validate({**doc, **updates})
            self._db[collection][str(doc_id)] = model.model_dump(mode="json")
            self._save()
        return model

    def _delete(self, collection, doc_id) -> bool:
        with self._lock:
            if self._db[collection].pop(str(doc_id), None) is None:
                return False
            self._save()
        return True

    def _delete_where(self, collection, key, value):
        docs = self._db[collection]
        for doc_id in [i for i, doc in docs.items() if doc.get(key) == value]:
            del docs[doc_id]

    def _clear_where(self, collection, key, value):
        for doc in self._db[collection].values():
            if doc.get(key) == value:
                doc[key] = None

    # Users
    def get_user(self, user_id):
        return self._get("users", user_id, schemas.User)

    def get_user_by_username(self, username):
        matches = self._all("users", schemas.User, username=username)
        return matches[0] if matches else None

    def create_user(self, username, password_hash):
        with self._lock:
            if any(doc.get("username") == username for doc in self._db["users"].values()):
                raise DuplicateUsernameError(username)
            return self._insert("users", {"username": username, "password": password_hash}, schemas.User)

    # Events
    def get_events(self):
        return sorted(self._all("events", schemas.Event), key=lambda e: (e.date, e.id))

    def get_event(self, event_id):
        return self._get("events", event_id, schemas.Event)

    def create_event(self, event):
        return self._insert("events", event.model_dump(), schemas.Event)

    def update_event(self, event_id, updates):
        return self._update("events", event_id, updates, schemas.Event)

    def delete_event(self, event_id):
        with self._lock:
            if str(event_id) not in self._db["events"]:
                return False
            self._delete_where("expenses", "event_id", event_id)
            self._delete_where("sms_notifications", "event_id", event_id)
            self._clear_where("tasks", "event_id", event_id)
            del self._db["events"][str(event_id)]
            self._save()
        return True

    # Meetings
    def get_meetings(self):
        return sorted(self._all("meetings", schemas.Meeting), key=lambda m: (m.date, m.id))

    def get_meeting(self, meeting_id):
        return self._get("meetings", meeting_id, schemas.Meeting)

    def create_meeting(self, meeting):
        return self._insert("meetings", meeting.model_dump(), schemas.Meeting)

    def update_meeting(self, meeting_id, updates):
        return self._update("meetings", meeting_id, updates, schemas.Meeting)

    def delete_meeting(self, meeting_id):
        with self._lock:
            if str(meeting_id) not in self._db["meetings"]:
                return False
            self._clear_where("tasks", "meeting_id", meeting_id)
            del self._db["meetings"][str(meeting_id)]
            self._save()
        return True

    # Tasks
    def get_tasks(self):
        return sorted(self._all("tasks", schemas.Task), key=lambda t: t.id)

    def create_task(self, task):
        return self._insert("tasks", task.model_dump(), schemas.Task)

    def update_task(self, task_id, updates):
        return self._update("tasks", task_id, updates, schemas.Task)

    def delete_task(self, task_id):
        return self._delete("tasks", task_id)

    # Staff
    def get_staff(self):
        return sorted(self._all("staff", schemas.Staff), key=lambda s: (s.name, s.id))

    def get_active_staff(self):
        return sorted(self._all("staff", schemas.Staff, is_active=True), key=lambda s: (s.name, s.id))

    def create_staff(self, staff):
        return self._insert("staff", staff.model_dump(), schemas.Staff)

    def update_staff(self, staff_id, updates):
        return self._update("staff", staff_id, updates, schemas.Staff)

    def delete_staff(self, staff_id):
        with self._lock:
            if str(staff_id) not in self._db["staff"]:
                return False
            self._delete_where("sms_notifications", "staff_id", staff_id)
            del self._db["staff"][str(staff_id)]
            self._save()
        return True

    # SMS notifications
    def get_sms_notifications(self, event_id):
        return sorted(
            self._all("sms_notifications", schemas.SmsNotification, event_id=event_id),
            key=lambda n: n.id,
        )

    def create_sms_notifications(self, notifications):
        created = []
        with self._lock:
            now = utcnow()
            for notification in notifications:
                doc_id = self._next_id("sms_notifications")
                model = schemas.SmsNotification.model_validate(
                    {**notification.model_dump(), "id": doc_id, "created_at": now, "sent_at": None}
                )
                self._db["sms_notifications"][str(doc_id)] = model.model_dump(mode="json")
                created.append(model)
            self._save()
        return created

    def update_sms_notification(self, notification_id, updates):
        return self._update("sms_notifications", notification_id, updates, schemas.SmsNotification)

    # Expenses
    def get_expenses(self, event_id):
        return sorted(self._all("expenses", schemas.Expense, event_id=event_id), key=lambda e: e.id)

    def create_expense(self, event_id, expense):
        return self._insert("expenses", {**expense.model_dump(), "event_id": event_id}, schemas.Expense)

    def update_expense(self, expense_id, updates):
        return self._update("expenses", expense_id, updates, schemas.Expense)

    def delete_expense(self, expense_id):
        return self._delete("expenses", expense_id)

    # Event templates
    def get_event_templates(self):
        return sorted(self._all("event_templates", schemas.EventTemplate), key=lambda t: t.id)

    def get_event_template(self, template_id):
        return self._get("event_templates", template_id, schemas.EventTemplate)

    def create_event_template(self, template):
        return self._insert("event_templates", template.model_dump(), schemas.EventTemplate)

    def update_event_template(self, template_id, updates):
        return self._update("event_templates", template_id, updates, schemas.EventTemplate)

    def delete_event_template(self, template_id):
        with self._lock:
            if str(template_id) not in self._db["event_templates"]:
                return False
            self._clear_where("events", "template_id", template_id)
            del self._db["event_templates"][str(template_id)]
            self._save()
        return True


_document_storage = None
_singleton_lock = threading.Lock()


def get_document_storage() -> DocumentStorage:
    global _document_storage
    with _singleton_lock:
        if _document_storage is None:
            path = get_settings().document_store_path
            _document_storage = DocumentStorage(Path(path) if path else None)
            logger.info("Document store opened", path=path or "<memory>")
        return _document_storage


def reset_document_storage() -> None:
    global _document_storage
    with _singleton_lock:
        _document_storage = None
