SUBSCRIPTION = {
    "endpoint": "https://fcm.googleapis.com/fcm/send/abc123",
    "expirationTime": None,
    "keys": {"p256dh": "BNcRdreALRFXTkOOUHK1EtK2wtaz5Ry4YfYCA", "auth": "tBHItJI5svbpez7KI4CCXg"},
}


async def test_unsubscribe_without_record_is_not_found(client, alice):
    resp = await client.delete("/notifications/push/unsubscribe", headers=alice.headers)
    assert resp.status_code == 404
    assert resp.json()["error"] == "Notification preferences not found"


async def test_subscribe_creates_defaults_then_unsubscribe_keeps_record(client, alice):
    resp = await client.post("/notifications/push/subscribe", json=SUBSCRIPTION, headers=alice.headers)
    assert resp.status_code == 200
    assert resp.json()["subscription"]["endpoint"] == SUBSCRIPTION["endpoint"]
    assert resp.json()["subscription"]["keys"]["auth"] == SUBSCRIPTION["keys"]["auth"]

    prefs = (await client.get("/notifications/preferences", headers=alice.headers)).json()["preferences"]
    assert prefs["pushNotificationsEnabled"] is True
    assert prefs["dailyEmailEnabled"] is True
    assert prefs["dailyEmailTime"] == "08:00"
    assert prefs["weeklyEmailDay"] == "MONDAY"
    assert prefs["weeklyEmailTime"] == "09:00"
    assert prefs["reminderMinutesBefore"] == [15, 60]

    resp = await client.delete("/notifications/push/unsubscribe", headers=alice.headers)
    assert resp.status_code == 200

    prefs = (await client.get("/notifications/preferences", headers=alice.headers)).json()["preferences"]
    assert prefs["pushNotificationsEnabled"] is False
    assert prefs["pushSubscription"] is None
    assert prefs["dailyEmailTime"] == "08:00"


async def test_resubscribe_only_touches_push_fields(client, alice):
    await client.patch(
        "/notifications/preferences", json={"dailyEmailTime": "7:15", "weeklyEmailDay": "FRIDAY"},
        headers=alice.headers,
    )
    await client.post("/notifications/push/subscribe", json=SUBSCRIPTION, headers=alice.headers)

    prefs = (await client.get("/notifications/preferences", headers=alice.headers)).json()["preferences"]
    assert prefs["dailyEmailTime"] == "07:15"
    assert prefs["weeklyEmailDay"] == "FRIDAY"
    assert prefs["pushNotificationsEnabled"] is True


async def test_get_preferences_lazily_creates_with_push_off(client, alice):
    resp = await client.get("/notifications/preferences", headers=alice.headers)
    assert resp.status_code == 200
    assert resp.json()["preferences"]["pushNotificationsEnabled"] is False


async def test_update_preferences_validates(client, alice):
    for payload in (
        {"dailyEmailTime": "25:00"},
        {"weeklyEmailDay": "FUNDAY"},
        {"reminderMinutesBefore": [0]},
    ):
        resp = await client.patch("/notifications/preferences", json=payload, headers=alice.headers)
        assert resp.status_code == 400, payload

    resp = await client.patch(
        "/notifications/preferences", json={"reminderMinutesBefore": [60, 5, 60]}, headers=alice.headers
    )
    assert resp.status_code == 200
    assert resp.json()["preferences"]["reminderMinutesBefore"] == [5, 60]


async def test_subscribe_rejects_bad_payload(client, alice):
    resp = await client.post(
        "/notifications/push/subscribe", json={"endpoint": "not a url", "keys": {}}, headers=alice.headers
    )
    assert resp.status_code == 400


async def test_test_email_needs_smtp(client, alice):
    resp = await client.post("/notifications/preferences/test", headers=alice.headers)
    assert resp.status_code == 400
