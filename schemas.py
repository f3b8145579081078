import re
from datetime import date, datetime, timezone
from typing import Annotated, ClassVar, Literal, Optional, get_args

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    constr,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from config import get_settings


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# Stored datetimes are naive UTC in every backend
UtcDatetime = Annotated[datetime, AfterValidator(_naive_utc)]

EventStatus = Literal["planning", "advertised", "completed"]
MeetingStatus = Literal["scheduled", "completed"]
TaskPriority = Literal["hot", "warm", "cold"]
TaskStatus = Literal["todo", "in_progress", "done"]
SmsStatus = Literal["pending", "sent", "failed"]
RecurringType = Literal["weekly", "biweekly", "monthly"]
ExpenseCategory = Literal[
    "food", "decorations", "entertainment", "venue", "equipment", "prizes", "other"
]
EXPENSE_CATEGORIES = get_args(ExpenseCategory)


def normalize_phone(raw: str, country_code: Optional[str] = None) -> str:
    """Return the number in E.164 form.

    Numbers without a leading ``+`` are treated as local and get the
    default country code prepended.
    """
    raw = raw.strip()
    digits = re.sub(r"\D", "", raw)
    if raw.startswith("+"):
        number = "+" + digits
    else:
        prefix = country_code or get_settings().default_country_code
        number = prefix + digits
    if not 7 <= len(number) - 1 <= 15:
        raise ValueError("Phone number must have between 7 and 15 digits")
    return number


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class PartialModel(CamelModel):
    """Base for PATCH bodies: every field optional, some never null."""

    non_nullable: ClassVar[tuple[str, ...]] = ()

    @model_validator(mode="after")
    def reject_nulls(self):
        for name in self.non_nullable:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{to_camel(name)} cannot be null")
        return self


class SuccessResponse(CamelModel):
    success: bool = True


# Users


class UserCreate(BaseModel):
    username: constr(min_length=3, max_length=50)
    password: constr(min_length=6)


class UserLogin(BaseModel):
    username: str
    password: str


class User(CamelModel):
    id: int
    username: str
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


# Events


class EventCreate(CamelModel):
    title: str = Field(min_length=1)
    description: str = ""
    date: UtcDatetime
    location: Optional[str] = None
    status: EventStatus = "planning"
    poster_url: Optional[str] = None
    slack_message_ts: Optional[str] = None
    budget: int = Field(default=0, ge=0)
    max_attendees: Optional[int] = Field(default=None, ge=1)
    template_id: Optional[int] = None

    @field_validator("description", mode="before")
    @classmethod
    def default_description(cls, value):
        return "" if value is None else value

    @field_validator("budget", mode="before")
    @classmethod
    def default_budget(cls, value):
        return 0 if value is None else value


class Event(EventCreate):
    id: int
    created_at: datetime


class EventUpdate(PartialModel):
    non_nullable: ClassVar[tuple[str, ...]] = ("title", "description", "date", "status", "budget")

    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    date: Optional[UtcDatetime] = None
    location: Optional[str] = None
    status: Optional[EventStatus] = None
    poster_url: Optional[str] = None
    slack_message_ts: Optional[str] = None
    budget: Optional[int] = Field(default=None, ge=0)
    max_attendees: Optional[int] = Field(default=None, ge=1)


# Meetings


class MeetingCreate(CamelModel):
    title: str = Field(min_length=1)
    date: UtcDatetime
    chairperson_id: Optional[int] = None
    secretary_id: Optional[int] = None
    loop_link: Optional[str] = None
    minutes: Optional[str] = None
    status: MeetingStatus = "scheduled"


class Meeting(MeetingCreate):
    id: int
    created_at: datetime


class MeetingUpdate(PartialModel):
    non_nullable: ClassVar[tuple[str, ...]] = ("title", "date", "status")

    title: Optional[str] = Field(default=None, min_length=1)
    date: Optional[UtcDatetime] = None
    chairperson_id: Optional[int] = None
    secretary_id: Optional[int] = None
    loop_link: Optional[str] = None
    minutes: Optional[str] = None
    status: Optional[MeetingStatus] = None


# Tasks


class TaskCreate(CamelModel):
    title: str = Field(min_length=1)
    priority: TaskPriority
    status: TaskStatus = "todo"
    assignee_id: Optional[int] = None
    event_id: Optional[int] = None
    meeting_id: Optional[int] = None
    due_date: Optional[UtcDatetime] = None


class Task(TaskCreate):
    id: int


class TaskUpdate(PartialModel):
    non_nullable: ClassVar[tuple[str, ...]] = ("title", "priority", "status")

    title: Optional[str] = Field(default=None, min_length=1)
    priority: Optional[TaskPriority] = None
    status: Optional[TaskStatus] = None
    assignee_id: Optional[int] = None
    event_id: Optional[int] = None
    meeting_id: Optional[int] = None
    due_date: Optional[UtcDatetime] = None


# Staff


class StaffCreate(CamelModel):
    name: str = Field(min_length=1)
    phone: str
    is_active: bool = True

    @field_validator("phone", mode="before")
    @classmethod
    def clean_phone(cls, value):
        if isinstance(value, str):
            return normalize_phone(value)
        return value


class Staff(CamelModel):
    id: int
    name: str
    phone: str
    is_active: bool
    created_at: datetime


class StaffUpdate(PartialModel):
    non_nullable: ClassVar[tuple[str, ...]] = ("name", "phone", "is_active")

    name: Optional[str] = Field(default=None, min_length=1)
    phone: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("phone", mode="before")
    @classmethod
    def clean_phone(cls, value):
        if isinstance(value, str):
            return normalize_phone(value)
        return value


# SMS notifications


class SmsNotificationCreate(CamelModel):
    event_id: int
    staff_id: int
    message: str
    status: SmsStatus = "pending"


class SmsNotification(SmsNotificationCreate):
    id: int
    sent_at: Optional[datetime] = None
    created_at: datetime


class SmsQueueRequest(CamelModel):
    message: str = Field(min_length=1, max_length=1600)
    staff_ids: list[int] = Field(default_factory=list)


class SmsSendSummary(CamelModel):
    sent: int
    failed: int
    message: str


class BulkSmsRequest(CamelModel):
    message: str = Field(min_length=1, max_length=1600)
    phone_numbers: list[str] = Field(min_length=1)

    @field_validator("phone_numbers")
    @classmethod
    def clean_numbers(cls, value):
        return [normalize_phone(number) for number in value]


class BulkSmsResponse(CamelModel):
    success: bool
    sent: int
    failed: int


# Expenses


class ExpenseCreate(CamelModel):
    description: str = Field(min_length=1)
    amount: int = Field(ge=0)
    category: ExpenseCategory
    vendor: Optional[str] = None
    paid_at: Optional[UtcDatetime] = None


class Expense(ExpenseCreate):
    id: int
    event_id: int
    created_at: datetime


class ExpenseUpdate(PartialModel):
    non_nullable: ClassVar[tuple[str, ...]] = ("description", "amount", "category")

    description: Optional[str] = Field(default=None, min_length=1)
    amount: Optional[int] = Field(default=None, ge=0)
    category: Optional[ExpenseCategory] = None
    vendor: Optional[str] = None
    paid_at: Optional[UtcDatetime] = None


class CategoryTotal(CamelModel):
    category: str
    total: int


class BudgetSummary(CamelModel):
    event_id: int
    budget: int
    total_spent: int
    remaining: int
    over_budget: bool
    over_by: int
    spent_percentage: float
    by_category: list[CategoryTotal]


# Event templates


class EventTemplateCreate(CamelModel):
    name: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: str = ""
    location: Optional[str] = None
    budget: int = Field(default=0, ge=0)
    max_attendees: Optional[int] = Field(default=None, ge=1)
    is_recurring: bool = False
    recurring_type: Optional[RecurringType] = None
    recurring_day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    recurring_day_of_month: Optional[int] = Field(default=None, ge=1, le=31)

    @field_validator("description", mode="before")
    @classmethod
    def default_description(cls, value):
        return "" if value is None else value

    @model_validator(mode="after")
    def check_recurrence(self):
        if not self.is_recurring:
            self.recurring_type = None
            self.recurring_day_of_week = None
            self.recurring_day_of_month = None
        elif self.recurring_type is None:
            raise ValueError("recurringType is required for recurring templates")
        elif self.recurring_type == "monthly":
            if self.recurring_day_of_month is None:
                raise ValueError("recurringDayOfMonth is required for monthly templates")
            self.recurring_day_of_week = None
        else:
            if self.recurring_day_of_week is None:
                raise ValueError(f"recurringDayOfWeek is required for {self.recurring_type} templates")
            self.recurring_day_of_month = None
        return self


class EventTemplate(EventTemplateCreate):
    id: int
    created_at: datetime


class EventTemplateUpdate(PartialModel):
    non_nullable: ClassVar[tuple[str, ...]] = ("name", "title", "description", "budget", "is_recurring")

    name: Optional[str] = Field(default=None, min_length=1)
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    location: Optional[str] = None
    budget: Optional[int] = Field(default=None, ge=0)
    max_attendees: Optional[int] = Field(default=None, ge=1)
    is_recurring: Optional[bool] = None
    recurring_type: Optional[RecurringType] = None
    recurring_day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    recurring_day_of_month: Optional[int] = Field(default=None, ge=1, le=31)


class CreateEventFromTemplate(CamelModel):
    date: UtcDatetime


class NextOccurrence(CamelModel):
    template_id: int
    occurs_on: Optional[date] = None


# Dashboard


class DashboardStats(CamelModel):
    total_events: int
    upcoming_events: int
    total_meetings: int
    upcoming_meetings: int
    templates: int
    next_event: Optional[Event] = None
