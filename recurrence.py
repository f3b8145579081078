from datetime import date, datetime, time, timedelta
from typing import Optional

import structlog
from dateutil.relativedelta import relativedelta, SU, MO, TU, WE, TH, FR, SA

from config import get_settings
from schemas import Event, EventCreate, EventTemplate
from storage import Storage, open_storage

logger = structlog.get_logger()

# Indexed by recurringDayOfWeek, where Sunday is 0
WEEKDAYS = (SU, MO, TU, WE, TH, FR, SA)


def _on_or_after_weekday(day: date, day_of_week: int) -> date:
    return day + relativedelta(weekday=WEEKDAYS[day_of_week](+1))


def next_occurrence(template: EventTemplate, on_or_after: date) -> Optional[date]:
    """First date on or after ``on_or_after`` produced by the template's rule."""
    if not template.is_recurring or template.recurring_type is None:
        return None

    if template.recurring_type == "weekly":
        return _on_or_after_weekday(on_or_after, template.recurring_day_of_week)

    if template.recurring_type == "biweekly":
        anchor = _on_or_after_weekday(template.created_at.date(), template.recurring_day_of_week)
        if on_or_after <= anchor:
            return anchor
        periods = -(-(on_or_after - anchor).days // 14)
        return anchor + timedelta(days=14 * periods)

    # monthly; relativedelta clamps day=31 to the last day of shorter months
    candidate = on_or_after + relativedelta(day=template.recurring_day_of_month)
    if candidate < on_or_after:
        candidate = on_or_after + relativedelta(months=+1, day=template.recurring_day_of_month)
    return candidate


def event_from_template(template: EventTemplate, when: datetime) -> EventCreate:
    return EventCreate(
        title=template.title,
        description=template.description,
        date=when,
        location=template.location,
        budget=template.budget,
        max_attendees=template.max_attendees,
        status="planning",
        poster_url=None,
        slack_message_ts=None,
        template_id=template.id,
    )


def generate_recurring_events(
    storage: Storage,
    today: date,
    lookahead_days: int,
    event_hour: int,
) -> list[Event]:
    horizon = today + timedelta(days=lookahead_days)
    existing = {
        (event.template_id, event.date.date())
        for event in storage.get_events()
        if event.template_id is not None
    }

    created = []
    for template in storage.get_event_templates():
        occurs_on = next_occurrence(template, today)
        if occurs_on is None or occurs_on > horizon:
            continue
        if (template.id, occurs_on) in existing:
            continue
        when = datetime.combine(occurs_on, time(hour=event_hour))
        event = storage.create_event(event_from_template(template, when))
        created.append(event)
        logger.info(
            "Recurring event created",
            template_id=template.id,
            event_id=event.id,
            date=occurs_on.isoformat(),
        )
    return created


def run_recurring_job():
    """Scheduled entry point; opens its own storage."""
    settings = get_settings()
    with open_storage() as storage:
        created = generate_recurring_events(
            storage,
            today=date.today(),
            lookahead_days=settings.recurring_lookahead_days,
            event_hour=settings.recurring_event_hour,
        )
    logger.info("Recurring event job finished", created=len(created))
