# tests/test_api.py

from datetime import date, timedelta

from nowly.models import Task


def _create(client, title, scheduled_date=None, **fields):
    payload = {"title": title, **fields}
    if scheduled_date is not None:
        payload["scheduled_date"] = scheduled_date.isoformat()
    response = client.post("/api/tasks", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def test_health(anon_client) -> None:
    assert anon_client.get("/health").json() == {"status": "healthy"}


def test_tasks_require_authentication(anon_client) -> None:
    assert anon_client.get("/api/tasks").status_code == 401


def test_signup_signin_and_me(anon_client) -> None:
    response = anon_client.post("/api/auth/signup", json={"email": "new@example.com", "password": "longpassword"})
    assert response.status_code == 200, response.text
    assert response.json()["user"]["email"] == "new@example.com"

    response = anon_client.post("/api/auth/signin", json={"email": "new@example.com", "password": "wrong"})
    assert response.status_code == 401

    response = anon_client.post("/api/auth/signin", json={"email": "new@example.com", "password": "longpassword"})
    token = response.json()["access_token"]

    me = anon_client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["email"] == "new@example.com"


def test_new_tasks_append_to_their_day(client) -> None:
    day = date.today()
    first = _create(client, "one", day)
    second = _create(client, "two", day)
    loose = _create(client, "later")

    assert first["position"] < second["position"]
    assert loose["scheduled_date"] is None

    listed = client.get("/api/tasks", params={"date": day.isoformat()}).json()
    assert [task["id"] for task in listed] == [first["id"], second["id"]]

    unscheduled = client.get("/api/tasks", params={"unscheduled": True}).json()
    assert [task["id"] for task in unscheduled] == [loose["id"]]


def test_due_date_before_scheduled_date_is_rejected(client) -> None:
    response = client.post(
        "/api/tasks",
        json={"title": "x", "scheduled_date": "2025-03-03", "due_date": "2025-03-01"},
    )
    assert response.status_code == 422


def test_moving_task_to_another_day_appends_it(client) -> None:
    today = date.today()
    tomorrow = today + timedelta(days=1)
    _create(client, "there", tomorrow)
    moving = _create(client, "here", today)

    response = client.put(f"/api/tasks/{moving['id']}", json={"scheduled_date": tomorrow.isoformat()})
    assert response.status_code == 200

    listed = client.get("/api/tasks", params={"date": tomorrow.isoformat()}).json()
    assert [task["title"] for task in listed] == ["there", "here"]


def test_complete_sets_timestamp(client) -> None:
    task = _create(client, "done soon")

    done = client.patch(f"/api/tasks/{task['id']}/complete").json()
    assert done["completed"] is True
    assert done["completed_at"] is not None

    undone = client.patch(f"/api/tasks/{task['id']}/complete", json={"completed": False}).json()
    assert undone["completed"] is False
    assert undone["completed_at"] is None


def test_reorder_endpoint(client) -> None:
    day = date.today()
    ids = [_create(client, title, day)["id"] for title in ("a", "b", "c")]

    response = client.post(
        "/api/tasks/reorder",
        json={"scheduled_date": day.isoformat(), "old_index": 2, "new_index": 0, "task_id": ids[2]},
    )
    assert response.status_code == 200, response.text
    body = response.json()
    # The first task sits on the minimum key, so the move rebalances.
    assert body["rebalanced"] is True
    assert [task["id"] for task in body["tasks"]] == [ids[2], ids[0], ids[1]]


def test_reorder_with_stale_view_is_a_conflict(client) -> None:
    day = date.today()
    ids = [_create(client, title, day)["id"] for title in ("a", "b")]

    response = client.post(
        "/api/tasks/reorder",
        json={"scheduled_date": day.isoformat(), "old_index": 0, "new_index": 1, "task_id": ids[1]},
    )
    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "write_conflict"


def test_reorder_out_of_range(client) -> None:
    _create(client, "only", date.today())
    response = client.post(
        "/api/tasks/reorder",
        json={"scheduled_date": date.today().isoformat(), "old_index": 0, "new_index": 3},
    )
    assert response.status_code == 422


def test_position_update_conflict_and_validation(client) -> None:
    task = _create(client, "a")

    response = client.patch(f"/api/tasks/{task['id']}/position", json={"position": "5", "expected_position": "9"})
    assert response.status_code == 409
    assert response.json()["detail"]["retryable"] is True

    response = client.patch(f"/api/tasks/{task['id']}/position", json={"position": "50"})
    assert response.status_code == 422

    response = client.patch(f"/api/tasks/{task['id']}/position", json={"position": "5", "expected_position": task["position"]})
    assert response.status_code == 200
    assert response.json()["position"] == "5"


def test_rebalance_endpoint_is_all_or_nothing(client, db, other_user, make_task) -> None:
    mine = _create(client, "mine")
    theirs = make_task(other_user, "0")

    response = client.post(
        "/api/tasks/rebalance",
        json={
            "updates": [
                {"task_id": mine["id"], "new_position": "i"},
                {"task_id": theirs.id, "new_position": "r"},
            ]
        },
    )
    assert response.status_code == 404
    assert response.json()["detail"]["failures"][0]["task_id"] == theirs.id

    assert db.query(Task).filter(Task.id == mine["id"]).one().position == mine["position"]


def test_rollover_and_overdue_count(client) -> None:
    today = date.today()
    yesterday = today - timedelta(days=1)
    stale = _create(client, "stale", yesterday)
    _create(client, "due today", today, due_date=today.isoformat())

    assert client.get("/api/tasks/overdue/count").json() == {"count": 1}

    response = client.post("/api/tasks/rollover", json={"task_ids": [stale["id"]], "new_date": today.isoformat()})
    assert response.status_code == 200
    assert [task["title"] for task in response.json()] == ["due today", "stale"]

    assert client.get("/api/tasks/overdue/count").json() == {"count": 0}


def test_delete_task(client) -> None:
    task = _create(client, "bye")
    assert client.delete(f"/api/tasks/{task['id']}").status_code == 204
    assert client.get(f"/api/tasks/{task['id']}").status_code == 404


def test_categories_crud(client) -> None:
    response = client.post("/api/categories", json={"name": "Work", "color": "#3366ff"})
    assert response.status_code == 201
    category = response.json()

    task = _create(client, "report", category_id=category["id"])

    renamed = client.put(f"/api/categories/{category['id']}", json={"name": "Office"}).json()
    assert renamed["name"] == "Office"
    assert [c["name"] for c in client.get("/api/categories").json()] == ["Office"]

    assert client.delete(f"/api/categories/{category['id']}").status_code == 204
    assert client.get(f"/api/tasks/{task['id']}").json()["category_id"] is None

    bad = client.post("/api/categories", json={"name": "Home", "color": "blue"})
    assert bad.status_code == 422


def _create_recurring(client, **fields):
    payload = {
        "title": "Gym",
        "frequency": "weekly",
        "start_date": date.today().isoformat(),
        "weekly_days": [0, 2, 4],
    }
    payload.update(fields)
    return client.post("/api/recurring", json=payload)


def test_create_recurring_generates_instances(client) -> None:
    response = _create_recurring(client)
    assert response.status_code == 201, response.text
    body = response.json()

    assert body["recurring_item"]["rrule"] == "FREQ=WEEKLY;BYDAY=MO,WE,FR"
    assert len(body["generated_tasks"]) == 8
    assert all(task["recurring_item_id"] == body["recurring_item"]["id"] for task in body["generated_tasks"])

    # Already generated through its horizon: listing tasks tops up nothing.
    client.get("/api/tasks")
    assert client.post("/api/recurring/ensure-generated").json() == {"generated_tasks": []}


def test_create_recurring_validation(client) -> None:
    response = _create_recurring(client, weekly_days=[])
    assert response.status_code == 422
    assert response.json()["detail"]["field"] == "weekly_days"

    response = _create_recurring(client, frequency="monthly", weekly_days=None, monthly_day=32)
    assert response.status_code == 422


def test_recurring_rule_cannot_be_updated(client) -> None:
    item = _create_recurring(client).json()["recurring_item"]

    response = client.put(f"/api/recurring/{item['id']}", json={"frequency": "daily"})
    assert response.status_code == 422

    response = client.put(f"/api/recurring/{item['id']}", json={"title": "Swim"})
    assert response.status_code == 200
    assert response.json()["title"] == "Swim"


def test_pause_recurring_item(client) -> None:
    item = _create_recurring(client).json()["recurring_item"]

    response = client.patch(f"/api/recurring/{item['id']}/active", json={"is_active": False})
    assert response.status_code == 200
    assert response.json()["is_active"] is False

    active = client.get("/api/recurring", params={"active_only": True}).json()
    assert active == []
    assert len(client.get("/api/recurring").json()) == 1


def test_delete_recurring_keeps_completed_instances(client, db) -> None:
    created = _create_recurring(client).json()
    item_id = created["recurring_item"]["id"]
    done_id = created["generated_tasks"][0]["id"]
    client.patch(f"/api/tasks/{done_id}/complete")

    assert client.delete(f"/api/recurring/{item_id}").status_code == 204
    assert client.get(f"/api/recurring/{item_id}").status_code == 404

    remaining = db.query(Task).all()
    assert [task.id for task in remaining] == [done_id]
    assert remaining[0].recurring_item_id is None


def test_other_users_recurring_items_are_hidden(client, db, other_user) -> None:
    from nowly.services.recurring import RecurringTaskService
    from nowly.schemas.recurring import RecurringTaskItemCreate

    item, _ = RecurringTaskService(db).create(
        other_user.id,
        RecurringTaskItemCreate(title="Theirs", frequency="daily", start_date=date.today()),
    )
    assert client.get(f"/api/recurring/{item.id}").status_code == 404
    assert client.delete(f"/api/recurring/{item.id}").status_code == 404


def test_rollover_of_recurring_instance_onto_covered_day(client) -> None:
    today = date.today()
    yesterday = today - timedelta(days=1)
    created = _create_recurring(
        client, frequency="daily", weekly_days=None, start_date=yesterday.isoformat()
    ).json()
    item_id = created["recurring_item"]["id"]
    late = next(t for t in created["generated_tasks"] if t["scheduled_date"] == yesterday.isoformat())

    response = client.post("/api/tasks/rollover", json={"task_ids": [late["id"]], "new_date": today.isoformat()})
    assert response.status_code == 200, response.text

    moved = next(t for t in response.json() if t["id"] == late["id"])
    assert moved["scheduled_date"] == today.isoformat()
    assert moved["recurring_item_id"] is None
    assert [t["recurring_item_id"] for t in response.json()].count(item_id) == 1


def test_update_recurring_instance_onto_covered_day(client) -> None:
    today = date.today()
    yesterday = today - timedelta(days=1)
    created = _create_recurring(
        client, frequency="daily", weekly_days=None, start_date=yesterday.isoformat()
    ).json()
    late = next(t for t in created["generated_tasks"] if t["scheduled_date"] == yesterday.isoformat())

    response = client.put(f"/api/tasks/{late['id']}", json={"scheduled_date": today.isoformat()})
    assert response.status_code == 200, response.text
    assert response.json()["scheduled_date"] == today.isoformat()
    assert response.json()["recurring_item_id"] is None


def test_null_for_required_fields_is_rejected(client) -> None:
    task = _create(client, "keep my title")
    assert client.put(f"/api/tasks/{task['id']}", json={"title": None}).status_code == 422
    assert client.put(f"/api/tasks/{task['id']}", json={"completed": None}).status_code == 422
    assert client.put(f"/api/tasks/{task['id']}", json={"due_date": None}).status_code == 200

    item = _create_recurring(client).json()["recurring_item"]
    for field in ("title", "is_active", "due_offset_days"):
        response = client.put(f"/api/recurring/{item['id']}", json={field: None})
        assert response.status_code == 422, field

    category = client.post("/api/categories", json={"name": "Work", "color": "#3366ff"}).json()
    assert client.put(f"/api/categories/{category['id']}", json={"name": None}).status_code == 422
