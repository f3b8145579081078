from datetime import date
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from auth import get_current_user
from config import get_settings
from database import utcnow
from errors import first_error_message
from recurrence import event_from_template, generate_recurring_events, next_occurrence
from reports import dashboard_stats, expenses_csv, summarize_budget
from schemas import (
    BudgetSummary,
    CreateEventFromTemplate,
    DashboardStats,
    Event,
    EventCreate,
    EventTemplate,
    EventTemplateCreate,
    EventTemplateUpdate,
    EventUpdate,
    Expense,
    ExpenseCreate,
    ExpenseUpdate,
    Meeting,
    MeetingCreate,
    MeetingUpdate,
    NextOccurrence,
    Staff,
    StaffCreate,
    StaffUpdate,
    SuccessResponse,
    Task,
    TaskCreate,
    TaskUpdate,
)
from storage import Storage, get_storage

logger = structlog.get_logger()

router = APIRouter(dependencies=[Depends(get_current_user)])


def get_event_or_404(storage: Storage, event_id: int) -> Event:
    event = storage.get_event(event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


def get_template_or_404(storage: Storage, template_id: int) -> EventTemplate:
    template = storage.get_event_template(template_id)
    if not template:
        raise HTTPException(status_code=404, detail="Template not found")
    return template


# Events


@router.get("/events", response_model=list[Event])
async def get_events(storage: Storage = Depends(get_storage)):
    return storage.get_events()


@router.post("/events", response_model=Event, status_code=status.HTTP_201_CREATED)
async def create_event(event: EventCreate, storage: Storage = Depends(get_storage)):
    if event.template_id is not None:
        get_template_or_404(storage, event.template_id)
    created = storage.create_event(event)
    logger.info("Event created", event_id=created.id, title=created.title)
    return created


@router.get("/events/{event_id}", response_model=Event)
async def get_event(event_id: int, storage: Storage = Depends(get_storage)):
    return get_event_or_404(storage, event_id)


@router.patch("/events/{event_id}", response_model=Event)
async def update_event(event_id: int, updates: EventUpdate, storage: Storage = Depends(get_storage)):
    event = storage.update_event(event_id, updates.model_dump(exclude_unset=True))
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


@router.delete("/events/{event_id}", response_model=SuccessResponse)
async def delete_event(event_id: int, storage: Storage = Depends(get_storage)):
    if not storage.delete_event(event_id):
        raise HTTPException(status_code=404, detail="Event not found")
    logger.info("Event deleted", event_id=event_id)
    return SuccessResponse()


# Meetings


def _check_users(storage: Storage, fields: dict, *names: str):
    for name in names:
        if fields.get(name) is not None and not storage.get_user(fields[name]):
            raise HTTPException(status_code=400, detail="User not found")


@router.get("/meetings", response_model=list[Meeting])
async def get_meetings(storage: Storage = Depends(get_storage)):
    return storage.get_meetings()


@router.post("/meetings", response_model=Meeting, status_code=status.HTTP_201_CREATED)
async def create_meeting(meeting: MeetingCreate, storage: Storage = Depends(get_storage)):
    _check_users(storage, meeting.model_dump(), "chairperson_id", "secretary_id")
    return storage.create_meeting(meeting)


@router.get("/meetings/{meeting_id}", response_model=Meeting)
async def get_meeting(meeting_id: int, storage: Storage = Depends(get_storage)):
    meeting = storage.get_meeting(meeting_id)
    if not meeting:
        raise HTTPException(status_code=404, detail="Meeting not found")
    return meeting


@router.patch("/meetings/{meeting_id}", response_model=Meeting)
async def update_meeting(
    meeting_id: int, updates: MeetingUpdate, storage: Storage = Depends(get_storage)
):
    fields = updates.model_dump(exclude_unset=True)
    _check_users(storage, fields, "chairperson_id", "secretary_id")
    meeting = storage.update_meeting(meeting_id, fields)
    if not meeting:
        raise HTTPException(status_code=404, detail="Meeting not found")
    return meeting


@router.delete("/meetings/{meeting_id}", response_model=SuccessResponse)
async def delete_meeting(meeting_id: int, storage: Storage = Depends(get_storage)):
    if not storage.delete_meeting(meeting_id):
        raise HTTPException(status_code=404, detail="Meeting not found")
    return SuccessResponse()


# Tasks


def _check_task_links(storage: Storage, fields: dict):
    if fields.get("event_id") is not None and not storage.get_event(fields["event_id"]):
        raise HTTPException(status_code=400, detail="Event not found")
    if fields.get("meeting_id") is not None and not storage.get_meeting(fields["meeting_id"]):
        raise HTTPException(status_code=400, detail="Meeting not found")
    _check_users(storage, fields, "assignee_id")


@router.get("/tasks", response_model=list[Task])
async def get_tasks(storage: Storage = Depends(get_storage)):
    return storage.get_tasks()


@router.post("/tasks", response_model=Task, status_code=status.HTTP_201_CREATED)
async def create_task(task: TaskCreate, storage: Storage = Depends(get_storage)):
    _check_task_links(storage, task.model_dump())
    return storage.create_task(task)


@router.patch("/tasks/{task_id}", response_model=Task)
async def update_task(task_id: int, updates: TaskUpdate, storage: Storage = Depends(get_storage)):
    fields = updates.model_dump(exclude_unset=True)
    _check_task_links(storage, fields)
    task = storage.update_task(task_id, fields)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@router.delete("/tasks/{task_id}", response_model=SuccessResponse)
async def delete_task(task_id: int, storage: Storage = Depends(get_storage)):
    if not storage.delete_task(task_id):
        raise HTTPException(status_code=404, detail="Task not found")
    return SuccessResponse()


# Staff


@router.get("/staff", response_model=list[Staff])
async def get_staff(active: Optional[bool] = None, storage: Storage = Depends(get_storage)):
    if active:
        return storage.get_active_staff()
    staff = storage.get_staff()
    if active is False:
        return [member for member in staff if not member.is_active]
    return staff


@router.post("/staff", response_model=Staff, status_code=status.HTTP_201_CREATED)
async def create_staff(staff: StaffCreate, storage: Storage = Depends(get_storage)):
    member = storage.create_staff(staff)
    logger.info("Staff member added", staff_id=member.id)
    return member


@router.patch("/staff/{staff_id}", response_model=Staff)
async def update_staff(staff_id: int, updates: StaffUpdate, storage: Storage = Depends(get_storage)):
    member = storage.update_staff(staff_id, updates.model_dump(exclude_unset=True))
    if not member:
        raise HTTPException(status_code=404, detail="Staff member not found")
    return member


@router.delete("/staff/{staff_id}", response_model=SuccessResponse)
async def delete_staff(staff_id: int, storage: Storage = Depends(get_storage)):
    if not storage.delete_staff(staff_id):
        raise HTTPException(status_code=404, detail="Staff member not found")
    logger.info("Staff member removed", staff_id=staff_id)
    return SuccessResponse()


# Expenses


@router.get("/events/{event_id}/expenses", response_model=list[Expense])
async def get_expenses(event_id: int, storage: Storage = Depends(get_storage)):
    get_event_or_404(storage, event_id)
    return storage.get_expenses(event_id)


@router.post(
    "/events/{event_id}/expenses",
    response_model=Expense,
    status_code=status.HTTP_201_CREATED,
)
async def create_expense(
    event_id: int, expense: ExpenseCreate, storage: Storage = Depends(get_storage)
):
    get_event_or_404(storage, event_id)
    created = storage.create_expense(event_id, expense)
    logger.info("Expense recorded", event_id=event_id, expense_id=created.id, amount=created.amount)
    return created


@router.patch("/expenses/{expense_id}", response_model=Expense)
async def update_expense(
    expense_id: int, updates: ExpenseUpdate, storage: Storage = Depends(get_storage)
):
    expense = storage.update_expense(expense_id, updates.model_dump(exclude_unset=True))
    if not expense:
        raise HTTPException(status_code=404, detail="Expense not found")
    return expense


@router.delete("/expenses/{expense_id}", response_model=SuccessResponse)
async def delete_expense(expense_id: int, storage: Storage = Depends(get_storage)):
    if not storage.delete_expense(expense_id):
        raise HTTPException(status_code=404, detail="Expense not found")
    return SuccessResponse()


@router.get("/events/{event_id}/budget", response_model=BudgetSummary)
async def get_budget_summary(event_id: int, storage: Storage = Depends(get_storage)):
    event = get_event_or_404(storage, event_id)
    return summarize_budget(event, storage.get_expenses(event_id))


@router.get("/events/{event_id}/expenses/export")
async def export_expenses(event_id: int, storage: Storage = Depends(get_storage)):
    event = get_event_or_404(storage, event_id)
    content = expenses_csv(event, storage.get_expenses(event_id))
    return StreamingResponse(
        iter([content]),
        media_type="text/csv",
        headers={
            "Content-Disposition": f"attachment; filename=event_{event_id}_expenses.csv"
        },
    )


# Event templates


@router.get("/templates", response_model=list[EventTemplate])
async def get_templates(storage: Storage = Depends(get_storage)):
    return storage.get_event_templates()


@router.post("/templates", response_model=EventTemplate, status_code=status.HTTP_201_CREATED)
async def create_template(template: EventTemplateCreate, storage: Storage = Depends(get_storage)):
    return storage.create_event_template(template)


@router.post("/templates/generate", response_model=list[Event])
async def generate_events(storage: Storage = Depends(get_storage)):
    settings = get_settings()
    return generate_recurring_events(
        storage,
        today=date.today(),
        lookahead_days=settings.recurring_lookahead_days,
        event_hour=settings.recurring_event_hour,
    )


@router.get("/templates/{template_id}", response_model=EventTemplate)
async def get_template(template_id: int, storage: Storage = Depends(get_storage)):
    return get_template_or_404(storage, template_id)


@router.patch("/templates/{template_id}", response_model=EventTemplate)
async def update_template(
    template_id: int, updates: EventTemplateUpdate, storage: Storage = Depends(get_storage)
):
    template = get_template_or_404(storage, template_id)
    # The recurrence rule is validated on the merged template, not the patch alone
    merged = {
        **template.model_dump(exclude={"id", "created_at"}),
        **updates.model_dump(exclude_unset=True),
    }
    try:
        validated = EventTemplateCreate.model_validate(merged)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=first_error_message(exc.errors()))
    return storage.update_event_template(template_id, validated.model_dump())


@router.delete("/templates/{template_id}", response_model=SuccessResponse)
async def delete_template(template_id: int, storage: Storage = Depends(get_storage)):
    if not storage.delete_event_template(template_id):
        raise HTTPException(status_code=404, detail="Template not found")
    return SuccessResponse()


@router.post(
    "/templates/{template_id}/create-event",
    response_model=Event,
    status_code=status.HTTP_201_CREATED,
)
async def create_event_from_template(
    template_id: int, body: CreateEventFromTemplate, storage: Storage = Depends(get_storage)
):
    template = get_template_or_404(storage, template_id)
    event = storage.create_event(event_from_template(template, body.date))
    logger.info("Event created from template", template_id=template_id, event_id=event.id)
    return event


@router.get("/templates/{template_id}/next-occurrence", response_model=NextOccurrence)
async def get_next_occurrence(
    template_id: int, after: Optional[date] = None, storage: Storage = Depends(get_storage)
):
    template = get_template_or_404(storage, template_id)
    return NextOccurrence(
        template_id=template_id,
        occurs_on=next_occurrence(template, after or date.today()),
    )


# Dashboard


@router.get("/dashboard", response_model=DashboardStats)
async def get_dashboard(storage: Storage = Depends(get_storage)):
    return dashboard_stats(
        storage.get_events(),
        storage.get_meetings(),
        storage.get_event_templates(),
        now=utcnow(),
    )
