def create_meeting(client, **overrides):
    payload = {"title": "Planning", "date": "2030-04-10T12:00:00Z"}
    payload.update(overrides)
    response = client.post("/api/meetings", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


class TestMeetings:
    def test_create_defaults_to_scheduled(self, client):
        meeting = create_meeting(client, loopLink="https://loop.microsoft.com/example")

        assert meeting["status"] == "scheduled"
        assert meeting["loopLink"] == "https://loop.microsoft.com/example"
        assert meeting["minutes"] is None

    def test_list_is_ordered_by_date(self, client):
        create_meeting(client, title="Second", date="2030-05-01T12:00:00Z")
        create_meeting(client, title="First", date="2030-04-01T12:00:00Z")

        titles = [m["title"] for m in client.get("/api/meetings").json()]

        assert titles == ["First", "Second"]

    def test_record_minutes(self, client):
        meeting = create_meeting(client)

        response = client.patch(
            f"/api/meetings/{meeting['id']}",
            json={"minutes": "Agreed on a budget.", "status": "completed"},
        )

        assert response.status_code == 200
        assert response.json()["minutes"] == "Agreed on a budget."
        assert response.json()["status"] == "completed"
        assert client.get(f"/api/meetings/{meeting['id']}").json()["status"] == "completed"

    def test_invalid_status(self, client):
        meeting = create_meeting(client)

        response = client.patch(f"/api/meetings/{meeting['id']}", json={"status": "postponed"})

        assert response.status_code == 400
        assert response.json()["field"] == "status"

    def test_missing_meeting(self, client):
        assert client.get("/api/meetings/9").status_code == 404
        assert client.patch("/api/meetings/9", json={"title": "x"}).status_code == 404
        response = client.delete("/api/meetings/9")
        assert response.status_code == 404
        assert response.json() == {"message": "Meeting not found"}

    def test_delete_detaches_tasks(self, client):
        meeting = create_meeting(client)
        client.post("/api/tasks", json={"title": "Send minutes", "priority": "warm", "meetingId": meeting["id"]})

        assert client.delete(f"/api/meetings/{meeting['id']}").json() == {"success": True}

        assert client.get("/api/tasks").json()[0]["meetingId"] is None


class TestTasks:
    def test_create_and_list(self, client):
        response = client.post(
            "/api/tasks",
            json={"title": "Order cake", "priority": "hot", "dueDate": "2030-05-30T09:00:00Z"},
        )

        assert response.status_code == 201
        task = response.json()
        assert task["status"] == "todo"
        assert task["dueDate"] == "2030-05-30T09:00:00"
        assert client.get("/api/tasks").json() == [task]

    def test_priority_is_required(self, client):
        response = client.post("/api/tasks", json={"title": "Order cake"})

        assert response.status_code == 400
        assert response.json()["field"] == "priority"

    def test_links_must_exist(self, client):
        response = client.post("/api/tasks", json={"title": "Order cake", "priority": "cold", "eventId": 5})
        assert response.status_code == 400
        assert response.json() == {"message": "Event not found"}

        response = client.post("/api/tasks", json={"title": "Order cake", "priority": "cold", "meetingId": 5})
        assert response.status_code == 400
        assert response.json() == {"message": "Meeting not found"}

    def test_update_status(self, client):
        task = client.post("/api/tasks", json={"title": "Order cake", "priority": "hot"}).json()

        response = client.patch(f"/api/tasks/{task['id']}", json={"status": "done"})

        assert response.json()["status"] == "done"
        assert response.json()["priority"] == "hot"

    def test_delete(self, client):
        task = client.post("/api/tasks", json={"title": "Order cake", "priority": "hot"}).json()

        assert client.delete(f"/api/tasks/{task['id']}").status_code == 200
        assert client.get("/api/tasks").json() == []
        assert client.delete(f"/api/tasks/{task['id']}").status_code == 404


class TestUserReferences:
    def test_task_assignee_must_exist(self, backend_client):
        response = backend_client.post("/api/tasks", json={"title": "Order cake", "priority": "hot", "assigneeId": 999})

        assert response.status_code == 400
        assert response.json() == {"message": "User not found"}
        assert backend_client.get("/api/tasks").json() == []

    def test_task_assignee_can_be_registered_user(self, backend_client):
        response = backend_client.post("/api/tasks", json={"title": "Order cake", "priority": "hot", "assigneeId": 1})

        assert response.status_code == 201
        assert response.json()["assigneeId"] == 1

    def test_task_update_checks_assignee(self, backend_client):
        task = backend_client.post("/api/tasks", json={"title": "Order cake", "priority": "hot"}).json()

        response = backend_client.patch(f"/api/tasks/{task['id']}", json={"assigneeId": 999})

        assert response.status_code == 400
        assert response.json() == {"message": "User not found"}

    def test_meeting_roles_must_exist(self, backend_client):
        response = backend_client.post(
            "/api/meetings", json={"title": "Planning", "date": "2030-04-10T12:00:00Z", "chairpersonId": 999}
        )
        assert response.status_code == 400
        assert response.json() == {"message": "User not found"}

        meeting = backend_client.post(
            "/api/meetings", json={"title": "Planning", "date": "2030-04-10T12:00:00Z", "chairpersonId": 1}
        ).json()
        response = backend_client.patch(f"/api/meetings/{meeting['id']}", json={"secretaryId": 999})
        assert response.status_code == 400
        assert backend_client.get(f"/api/meetings/{meeting['id']}").json()["secretaryId"] is None
