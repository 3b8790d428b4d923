from datetime import timedelta

from sqlalchemy import func
from sqlalchemy.future import select

from app.models.tasks import Tag, Task, TaskTag
from app.utils.timeutils import utcnow


async def _tag(client, user, name, color="#10B981"):
    resp = await client.post("/tags", json={"name": name, "color": color}, headers=user.headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["tag"]["tagId"]


async def test_tags_are_listed_newest_first(client, alice):
    for name in ("urgent", "errand", "deep-work"):
        await _tag(client, alice, name)

    resp = await client.get("/tags", headers=alice.headers)
    assert [t["name"] for t in resp.json()["tags"]] == ["deep-work", "errand", "urgent"]


async def test_tag_listing_keeps_the_newest_hundred(client, db, alice):
    base = utcnow() - timedelta(days=1)
    for i in range(105):
        db.add(Tag(user_id=alice.user_id, name=f"t{i:03d}", color="#000000", created_at=base + timedelta(minutes=i)))
    await db.commit()

    names = [t["name"] for t in (await client.get("/tags", headers=alice.headers)).json()["tags"]]
    assert len(names) == 100
    assert names[0] == "t104"
    assert names[-1] == "t005"


async def test_duplicate_tag_name_conflicts(client, alice, bob):
    await _tag(client, alice, "urgent")
    resp = await client.post("/tags", json={"name": "urgent", "color": "#000000"}, headers=alice.headers)
    assert resp.status_code == 409
    await _tag(client, bob, "urgent")


async def test_deleting_tag_removes_only_join_rows(client, db, alice, create_task):
    urgent = await _tag(client, alice, "urgent")
    errand = await _tag(client, alice, "errand")
    task = await create_task(alice, tagIds=[urgent, errand])
    assert [t["name"] for t in task["tags"]] == ["errand", "urgent"]

    resp = await client.delete(f"/tags/{urgent}", headers=alice.headers)
    assert resp.status_code == 200

    resp = await client.get(f"/tasks/{task['taskId']}", headers=alice.headers)
    assert resp.status_code == 200
    assert [t["name"] for t in resp.json()["task"]["tags"]] == ["errand"]

    assert (await db.execute(select(func.count()).select_from(Task))).scalar() == 1
    assert (await db.execute(select(func.count()).select_from(Tag))).scalar() == 1
    links = (await db.execute(select(TaskTag.tag_id))).scalars().all()
    assert links == [errand]


async def test_task_cannot_use_another_users_tag(client, alice, bob):
    bobs_tag = await _tag(client, bob, "secret")
    resp = await client.post(
        "/tasks",
        json={"title": "Sneaky", "dueDate": "2030-01-01", "tagIds": [bobs_tag]},
        headers=alice.headers,
    )
    assert resp.status_code == 404
    assert resp.json()["error"] == "Tag not found"
