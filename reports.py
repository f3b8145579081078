import csv
from collections import defaultdict
from datetime import datetime
from io import StringIO

from schemas import (
    EXPENSE_CATEGORIES,
    BudgetSummary,
    CategoryTotal,
    DashboardStats,
    Event,
    EventTemplate,
    Expense,
    Meeting,
)


def summarize_budget(event: Event, expenses: list[Expense]) -> BudgetSummary:
    spent = sum(expense.amount for expense in expenses)
    budget = event.budget
    percentage = min(spent / budget * 100, 100.0) if budget > 0 else 0.0

    totals = defaultdict(int)
    for expense in expenses:
        totals[expense.category] += expense.amount

    return BudgetSummary(
        event_id=event.id,
        budget=budget,
        total_spent=spent,
        remaining=max(budget - spent, 0),
        over_budget=spent > budget,
        over_by=max(spent - budget, 0),
        spent_percentage=round(percentage, 2),
        by_category=[
            CategoryTotal(category=category, total=totals[category])
            for category in EXPENSE_CATEGORIES
            if category in totals
        ],
    )


def expenses_csv(event: Event, expenses: list[Expense]) -> str:
    """
    Renders an event's expenses as CSV containing:
    - All expense lines
    - Category-wise totals
    - Budget, spent and remaining
    """
    csv_data = StringIO()
    writer = csv.writer(csv_data)

    writer.writerow(["Date", "Description", "Category", "Vendor", "Amount"])
    for e in expenses:
        paid = e.paid_at.date().isoformat() if e.paid_at else ""
        writer.writerow([paid, e.description, e.category, e.vendor or "", e.amount])

    summary = summarize_budget(event, expenses)

    writer.writerow([])
    writer.writerow(["Category", "Total Spending"])
    for row in summary.by_category:
        writer.writerow([row.category, row.total])

    writer.writerow([])
    writer.writerow(["Budget", summary.budget])
    writer.writerow(["Spent", summary.total_spent])
    writer.writerow(["Remaining", summary.remaining])
    return csv_data.getvalue()


def dashboard_stats(
    events: list[Event],
    meetings: list[Meeting],
    templates: list[EventTemplate],
    now: datetime,
) -> DashboardStats:
    upcoming_events = sorted((e for e in events if e.date >= now), key=lambda e: e.date)
    upcoming_meetings = [m for m in meetings if m.date >= now]
    return DashboardStats(
        total_events=len(events),
        upcoming_events=len(upcoming_events),
        total_meetings=len(meetings),
        upcoming_meetings=len(upcoming_meetings),
        templates=len(templates),
        next_event=upcoming_events[0] if upcoming_events else None,
    )
