from datetime import date, datetime

import pytest

from recurrence import generate_recurring_events, next_occurrence
from schemas import EventTemplate, EventTemplateCreate


def make_template(**fields):
    values = {
        "id": 1,
        "name": "Friday drinks",
        "title": "Friday drinks",
        "created_at": datetime(2030, 1, 1, 9, 0),
        "is_recurring": True,
    }
    values.update(fields)
    return EventTemplate.model_validate(values)


# 2030-01-01 is a Tuesday
class TestNextOccurrence:
    def test_non_recurring(self):
        template = make_template(is_recurring=False)

        assert next_occurrence(template, date(2030, 1, 1)) is None

    @pytest.mark.parametrize(
        "day_of_week, expected",
        [(2, date(2030, 1, 1)), (3, date(2030, 1, 2)), (0, date(2030, 1, 6)), (1, date(2030, 1, 7))],
    )
    def test_weekly(self, day_of_week, expected):
        template = make_template(recurring_type="weekly", recurring_day_of_week=day_of_week)

        assert next_occurrence(template, date(2030, 1, 1)) == expected

    @pytest.mark.parametrize(
        "on_or_after, expected",
        [
            (date(2029, 12, 1), date(2030, 1, 1)),
            (date(2030, 1, 1), date(2030, 1, 1)),
            (date(2030, 1, 2), date(2030, 1, 15)),
            (date(2030, 1, 15), date(2030, 1, 15)),
            (date(2030, 1, 16), date(2030, 1, 29)),
        ],
    )
    def test_biweekly_is_anchored_on_creation(self, on_or_after, expected):
        template = make_template(recurring_type="biweekly", recurring_day_of_week=2)

        assert next_occurrence(template, on_or_after) == expected

    @pytest.mark.parametrize(
        "day_of_month, on_or_after, expected",
        [
            (15, date(2030, 1, 10), date(2030, 1, 15)),
            (15, date(2030, 1, 20), date(2030, 2, 15)),
            (31, date(2030, 2, 10), date(2030, 2, 28)),
            (31, date(2030, 1, 31), date(2030, 1, 31)),
            (1, date(2030, 12, 2), date(2031, 1, 1)),
        ],
    )
    def test_monthly(self, day_of_month, on_or_after, expected):
        template = make_template(recurring_type="monthly", recurring_day_of_month=day_of_month)

        assert next_occurrence(template, on_or_after) == expected


class TestRecurrenceRules:
    def test_non_recurring_clears_rule(self):
        template = EventTemplateCreate(
            name="One-off", title="One-off", is_recurring=False, recurring_type="weekly", recurring_day_of_week=3
        )

        assert template.recurring_type is None
        assert template.recurring_day_of_week is None

    def test_monthly_clears_day_of_week(self):
        template = EventTemplateCreate(
            name="Monthly",
            title="Monthly",
            is_recurring=True,
            recurring_type="monthly",
            recurring_day_of_month=5,
            recurring_day_of_week=2,
        )

        assert template.recurring_day_of_week is None
        assert template.recurring_day_of_month == 5

    def test_weekly_requires_day_of_week(self):
        with pytest.raises(ValueError, match="recurringDayOfWeek is required for weekly templates"):
            EventTemplateCreate(name="Weekly", title="Weekly", is_recurring=True, recurring_type="weekly")


class TestGenerateRecurringEvents:
    def test_creates_events_within_lookahead_once(self, storage):
        storage.create_event_template(
            EventTemplateCreate(
                name="Wednesday lunch",
                title="Team lunch",
                budget=20000,
                is_recurring=True,
                recurring_type="weekly",
                recurring_day_of_week=3,
            )
        )
        storage.create_event_template(
            EventTemplateCreate(
                name="Month end",
                title="Month end party",
                is_recurring=True,
                recurring_type="monthly",
                recurring_day_of_month=28,
            )
        )
        storage.create_event_template(EventTemplateCreate(name="Ad hoc", title="Ad hoc"))

        created = generate_recurring_events(storage, today=date(2030, 1, 1), lookahead_days=14, event_hour=17)

        assert [(e.title, e.date) for e in created] == [("Team lunch", datetime(2030, 1, 2, 17, 0))]
        assert created[0].budget == 20000
        assert created[0].template_id == 1
        assert generate_recurring_events(storage, today=date(2030, 1, 1), lookahead_days=14, event_hour=17) == []
        assert len(storage.get_events()) == 1


def create_template(client, **overrides):
    payload = {
        "name": "Quarterly fun day",
        "title": "Fun Day",
        "description": "Games and food",
        "location": "Main Hall",
        "budget": 50000,
        "maxAttendees": 50,
    }
    payload.update(overrides)
    response = client.post("/api/templates", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


class TestTemplatesApi:
    def test_crud(self, client):
        template = create_template(client)
        assert template["isRecurring"] is False
        assert client.get("/api/templates").json() == [template]
        assert client.get(f"/api/templates/{template['id']}").json() == template

        response = client.patch(f"/api/templates/{template['id']}", json={"budget": 60000})
        assert response.status_code == 200
        assert response.json()["budget"] == 60000
        assert response.json()["title"] == "Fun Day"

        assert client.delete(f"/api/templates/{template['id']}").json() == {"success": True}
        assert client.get(f"/api/templates/{template['id']}").status_code == 404

    def test_recurring_requires_type(self, client):
        response = client.post("/api/templates", json={"name": "x", "title": "x", "isRecurring": True})

        assert response.status_code == 400
        assert response.json()["message"] == "recurringType is required for recurring templates"

    def test_patch_validates_merged_rule(self, client):
        template = create_template(client, isRecurring=True, recurringType="weekly", recurringDayOfWeek=5)

        response = client.patch(f"/api/templates/{template['id']}", json={"recurringType": "monthly"})
        assert response.status_code == 400
        assert response.json() == {"message": "recurringDayOfMonth is required for monthly templates"}

        response = client.patch(
            f"/api/templates/{template['id']}", json={"recurringType": "monthly", "recurringDayOfMonth": 1}
        )
        assert response.status_code == 200
        assert response.json()["recurringDayOfMonth"] == 1
        assert response.json()["recurringDayOfWeek"] is None

    def test_create_event_from_template(self, client):
        template = create_template(client)

        response = client.post(
            f"/api/templates/{template['id']}/create-event", json={"date": "2030-03-15T17:00:00Z"}
        )

        assert response.status_code == 201
        event = response.json()
        assert event["title"] == "Fun Day"
        assert event["description"] == "Games and food"
        assert event["location"] == "Main Hall"
        assert event["budget"] == 50000
        assert event["maxAttendees"] == 50
        assert event["status"] == "planning"
        assert event["posterUrl"] is None
        assert event["templateId"] == template["id"]
        assert event["date"] == "2030-03-15T17:00:00"

    def test_create_event_from_missing_template(self, client):
        response = client.post("/api/templates/5/create-event", json={"date": "2030-03-15T17:00:00Z"})

        assert response.status_code == 404
        assert response.json() == {"message": "Template not found"}

    def test_delete_keeps_events(self, client):
        template = create_template(client)
        event = client.post(
            f"/api/templates/{template['id']}/create-event", json={"date": "2030-03-15T17:00:00Z"}
        ).json()

        client.delete(f"/api/templates/{template['id']}")

        assert client.get(f"/api/events/{event['id']}").json()["templateId"] is None

    def test_next_occurrence(self, client):
        weekly = create_template(client, isRecurring=True, recurringType="weekly", recurringDayOfWeek=5)
        one_off = create_template(client)

        response = client.get(f"/api/templates/{weekly['id']}/next-occurrence", params={"after": "2030-01-01"})
        assert response.json() == {"templateId": weekly["id"], "occursOn": "2030-01-04"}

        response = client.get(f"/api/templates/{one_off['id']}/next-occurrence")
        assert response.json() == {"templateId": one_off["id"], "occursOn": None}

    def test_generate_now(self, client):
        today = date.today()
        create_template(
            client, isRecurring=True, recurringType="weekly", recurringDayOfWeek=(today.weekday() + 1) % 7
        )

        response = client.post("/api/templates/generate")

        assert response.status_code == 200
        created = response.json()
        assert len(created) == 1
        assert created[0]["date"] == f"{today.isoformat()}T17:00:00"
        assert client.post("/api/templates/generate").json() == []
