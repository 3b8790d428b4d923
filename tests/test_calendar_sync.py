import asyncio
from datetime import date

import httplib2
import pytest
from googleapiclient.errors import HttpError
from sqlalchemy import update

from app.database import AsyncSessionLocal
from app.exceptions import UpstreamFailure
from app.models.tasks import Task
from app.models.user import User
from app.services import calendar as calendar_module
from app.services.calendar import CalendarSyncAdapter, _translate, build_event_body


async def _toggle(client, user, task_id):
    return await client.post(f"/tasks/{task_id}/calendar", headers=user.headers)


async def test_toggle_twice_restores_unsynced_state(client, alice, create_task, fake_calendar):
    task = await create_task(alice)

    resp = await _toggle(client, alice, task["taskId"])
    assert resp.status_code == 200
    body = resp.json()
    assert body["synced"] is True
    assert body["task"]["googleEventId"] == "evt-1"
    assert "evt-1" in fake_calendar.events

    resp = await _toggle(client, alice, task["taskId"])
    body = resp.json()
    assert body["synced"] is False
    assert body["task"]["googleEventId"] is None
    assert body["task"]["synced"] is False
    assert fake_calendar.events == {}


async def test_failed_second_toggle_keeps_synced_state(client, alice, create_task, fake_calendar):
    task = await create_task(alice)
    await _toggle(client, alice, task["taskId"])

    fake_calendar.fail_next = UpstreamFailure("Google Calendar request failed", details="HTTP 500")
    resp = await _toggle(client, alice, task["taskId"])
    assert resp.status_code == 502
    assert resp.json() == {"error": "Google Calendar request failed", "details": "HTTP 500"}

    resp = await client.get(f"/tasks/{task['taskId']}", headers=alice.headers)
    assert resp.json()["task"]["googleEventId"] == "evt-1"
    assert "evt-1" in fake_calendar.events


async def test_failed_first_toggle_leaves_task_unsynced(client, alice, create_task, fake_calendar):
    task = await create_task(alice)
    fake_calendar.fail_next = UpstreamFailure("Google Calendar did not respond in time", status_code=504)

    resp = await _toggle(client, alice, task["taskId"])
    assert resp.status_code == 504
    resp = await client.get(f"/tasks/{task['taskId']}", headers=alice.headers)
    assert resp.json()["task"]["googleEventId"] is None


async def test_concurrent_change_is_a_conflict(client, alice, create_task, fake_calendar):
    task = await create_task(alice)

    async def someone_else_syncs(t):
        async with AsyncSessionLocal() as other:
            await other.execute(
                update(Task).where(Task.task_id == t.task_id).values(google_event_id="evt-other")
            )
            await other.commit()

    fake_calendar.after_create = someone_else_syncs
    resp = await _toggle(client, alice, task["taskId"])
    assert resp.status_code == 409

    # The event we created is cleaned up, the winner's id stays
    assert "evt-1" not in fake_calendar.events
    assert fake_calendar.calls == ["create", "delete"]
    resp = await client.get(f"/tasks/{task['taskId']}", headers=alice.headers)
    assert resp.json()["task"]["googleEventId"] == "evt-other"


async def test_unsync_requires_synced_task(client, alice, create_task, fake_calendar):
    task = await create_task(alice)
    resp = await client.delete(f"/tasks/{task['taskId']}/calendar", headers=alice.headers)
    assert resp.status_code == 400

    await _toggle(client, alice, task["taskId"])
    resp = await client.delete(f"/tasks/{task['taskId']}/calendar", headers=alice.headers)
    assert resp.status_code == 200
    assert resp.json()["task"]["googleEventId"] is None
    assert fake_calendar.events == {}


async def test_editing_synced_task_updates_event(client, alice, create_task, fake_calendar):
    task = await create_task(alice, title="Dentist")
    await _toggle(client, alice, task["taskId"])

    resp = await client.patch(f"/tasks/{task['taskId']}", json={"title": "Dentist (moved)"}, headers=alice.headers)
    assert resp.status_code == 200
    assert fake_calendar.events["evt-1"]["summary"] == "Dentist (moved)"

    # Priority is not part of the event
    await client.patch(f"/tasks/{task['taskId']}", json={"priority": "HIGH"}, headers=alice.headers)
    assert fake_calendar.calls == ["create", "update"]


async def test_failed_event_update_rolls_back_edit(client, alice, create_task, fake_calendar):
    task = await create_task(alice, title="Dentist")
    await _toggle(client, alice, task["taskId"])

    fake_calendar.fail_next = UpstreamFailure("Permission denied", status_code=403)
    resp = await client.patch(f"/tasks/{task['taskId']}", json={"title": "Renamed"}, headers=alice.headers)
    assert resp.status_code == 403

    resp = await client.get(f"/tasks/{task['taskId']}", headers=alice.headers)
    assert resp.json()["task"]["title"] == "Dentist"


async def test_deleting_synced_task_removes_event_first(client, alice, create_task, fake_calendar):
    task = await create_task(alice)
    await _toggle(client, alice, task["taskId"])

    fake_calendar.fail_next = UpstreamFailure("Google Calendar request failed")
    resp = await client.delete(f"/tasks/{task['taskId']}", headers=alice.headers)
    assert resp.status_code == 502
    assert (await client.get(f"/tasks/{task['taskId']}", headers=alice.headers)).status_code == 200

    resp = await client.delete(f"/tasks/{task['taskId']}", headers=alice.headers)
    assert resp.status_code == 200
    assert fake_calendar.events == {}


async def test_other_users_task_cannot_be_synced(client, alice, bob, create_task, fake_calendar):
    task = await create_task(alice)
    resp = await _toggle(client, bob, task["taskId"])
    assert resp.status_code == 404
    assert fake_calendar.calls == []


# ---------- adapter ----------

def test_event_body_defaults_to_morning_half_hour():
    task = Task(task_id=7, title="Gym", description=None, due_date=date(2030, 6, 1), due_time=None,
                estimated_time=None)
    body = build_event_body(task, "Europe/Berlin")
    assert body["start"] == {"dateTime": "2030-06-01T09:00:00", "timeZone": "Europe/Berlin"}
    assert body["end"] == {"dateTime": "2030-06-01T09:30:00", "timeZone": "Europe/Berlin"}
    assert body["description"] == "duesync_task_id:7"


def test_event_body_uses_time_and_duration():
    task = Task(task_id=8, title="Review", description="Read PR", due_date=date(2030, 6, 1),
                due_time="14:15", estimated_time=90)
    body = build_event_body(task, "UTC")
    assert body["start"]["dateTime"] == "2030-06-01T14:15:00"
    assert body["end"]["dateTime"] == "2030-06-01T15:45:00"
    assert body["description"].startswith("Read PR\n")


@pytest.mark.parametrize("code, expected", [(401, 401), (403, 403), (500, 502), (404, 502)])
def test_http_errors_are_translated(code, expected):
    exc = HttpError(httplib2.Response({"status": code}), b"")
    assert _translate(exc).status_code == expected


async def test_adapter_without_google_account_is_400(db, make_user):
    created = await make_user("nogoogle@example.com", google=False)
    user = await db.get(User, created.user_id)
    task = Task(task_id=1, title="x", due_date=date(2030, 1, 1))

    with pytest.raises(UpstreamFailure) as err:
        await CalendarSyncAdapter(timeout=1).create_event(db, user, task)
    assert err.value.status_code == 400


async def test_adapter_times_out(db, make_user, monkeypatch):
    created = await make_user("slow@example.com")
    user = await db.get(User, created.user_id)

    def slow_insert(self, body):
        import time
        time.sleep(0.5)
        return {"id": "late"}

    monkeypatch.setattr(calendar_module.GoogleCalendarClient, "insert_event", slow_insert)
    task = Task(task_id=1, title="x", due_date=date(2030, 1, 1))
    with pytest.raises(UpstreamFailure) as err:
        await CalendarSyncAdapter(timeout=0.05).create_event(db, user, task)
    assert err.value.status_code == 504
    await asyncio.sleep(0.5)
