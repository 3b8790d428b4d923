import csv
import io

from sqlalchemy import func, text
from sqlalchemy.future import select

from app.models.email import EmailLog
from app.models.notifications import NotificationPreference
from app.models.tasks import Category, Tag, Task, TaskTag
from app.models.user import Account, Session, User
from app.services import account as account_service
from app.services.email_worker import enqueue_email

OWNED = (Task, TaskTag, Category, Tag, NotificationPreference, EmailLog, Session, Account, User)


async def _populate(client, user, create_task):
    cat = (await client.post("/categories", json={"name": "Work", "color": "#111111"}, headers=user.headers)).json()
    tag = (await client.post("/tags", json={"name": "focus", "color": "#222222"}, headers=user.headers)).json()
    await create_task(user, title="Ship it", categoryId=cat["category"]["categoryId"], tagIds=[tag["tag"]["tagId"]])
    await client.get("/notifications/preferences", headers=user.headers)
    await enqueue_email("Your tasks today", "- [HIGH] Ship it", to_email=user.email, kind="daily", user_id=user.user_id)


async def _counts(db) -> dict:
    return {m.__name__: (await db.execute(select(func.count()).select_from(m))).scalar() for m in OWNED}


async def test_delete_account_removes_everything(client, db, alice, bob, create_task):
    await _populate(client, alice, create_task)
    await _populate(client, bob, create_task)
    # An older log row that only knows the address
    await enqueue_email("DueSync test email", "Hi alice", to_email=alice.email, kind="test")

    resp = await client.delete("/user/delete", headers=alice.headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "Account and all associated data have been permanently deleted"
    assert "deletedAt" in body

    # Only bob's rows remain
    assert await _counts(db) == {
        "Task": 1, "TaskTag": 1, "Category": 1, "Tag": 1,
        "NotificationPreference": 1, "EmailLog": 1, "Session": 1, "Account": 1, "User": 1,
    }
    assert (await db.execute(select(User.email))).scalars().all() == ["bob@example.com"]
    assert (await db.execute(select(EmailLog.to_email))).scalars().all() == ["bob@example.com"]

    # The old token no longer resolves
    resp = await client.get("/user/me", headers=alice.headers)
    assert resp.status_code == 401


async def test_failing_step_removes_nothing(client, db, alice, create_task, monkeypatch):
    await _populate(client, alice, create_task)
    before = await _counts(db)

    steps = list(account_service.DELETION_STEPS)
    steps.insert(4, ("broken", lambda uid: text("DELETE FROM no_such_table")))
    monkeypatch.setattr(account_service, "DELETION_STEPS", steps)

    resp = await client.delete("/user/delete", headers=alice.headers)
    assert resp.status_code == 500
    assert resp.json()["error"] == "Failed to delete account"
    assert "no_such_table" in resp.json()["details"]

    assert await _counts(db) == before
    assert (await client.get("/user/me", headers=alice.headers)).status_code == 200


async def test_export_json_and_csv(client, alice, create_task):
    await _populate(client, alice, create_task)

    resp = await client.get("/user/export", headers=alice.headers)
    assert resp.status_code == 200
    data = resp.json()
    assert data["profile"]["email"] == "alice@example.com"
    assert data["tasks"][0]["category"] == {"name": "Work", "color": "#111111"}
    assert data["tasks"][0]["tags"] == [{"name": "focus", "color": "#222222"}]
    assert data["statistics"]["totalTasks"] == 1
    assert data["statistics"]["pendingTasks"] == 1
    assert data["notificationPreferences"]["dailyEmailTime"] == "08:00"

    resp = await client.get("/user/export", params={"format": "csv"}, headers=alice.headers)
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    rows = list(csv.DictReader(io.StringIO(resp.text)))
    assert len(rows) == 1
    assert rows[0]["title"] == "Ship it"
    assert rows[0]["category"] == "Work"
    assert rows[0]["tags"] == "focus"


async def test_profile_and_onboarding(client, alice):
    resp = await client.patch(
        "/user/profile", json={"name": "Alice A.", "timezone": "Europe/Paris"}, headers=alice.headers
    )
    assert resp.status_code == 200
    assert resp.json()["user"]["timezone"] == "Europe/Paris"

    resp = await client.patch(
        "/user/profile", json={"name": "Alice", "timezone": "Mars/Olympus"}, headers=alice.headers
    )
    assert resp.status_code == 400

    resp = await client.get("/user/onboarding", headers=alice.headers)
    assert resp.json() == {
        "hasCompletedOnboarding": False, "onboardingCompletedAt": None, "onboardingSkipped": False,
    }

    resp = await client.patch("/user/onboarding", json={"onboardingSkipped": True}, headers=alice.headers)
    onboarding = resp.json()["onboarding"]
    assert onboarding["hasCompletedOnboarding"] is True
    assert onboarding["onboardingSkipped"] is True
    assert onboarding["onboardingCompletedAt"] is not None
