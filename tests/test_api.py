from __future__ import annotations

from fastapi.testclient import TestClient

from conftest import KITCHEN_PASSWORD, order_payload
from preorder.services import orders as orders_module
from preorder.services.notifications.real import RealNotificationService


def _kitchen_orders(client: TestClient, **params) -> dict:
    response = client.get("/api/kitchen/orders", params=params)
    assert response.status_code == 200
    return response.json()


# =============================================================================
# CUSTOMER FLOW
# =============================================================================

def test_create_order_returns_summary(client: TestClient) -> None:
    response = client.post("/api/orders", json=order_payload())

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "received"
    assert body["sms"] == "sent"
    assert body["orderId"]
    assert body["summary"] == {
        "day": "Saturday",
        "slot": "10:00-10:30",
        "item": "bagel",
        "total_cents": 500,
    }


def test_create_order_normalizes_phone_and_queues(kitchen: TestClient) -> None:
    order_id = kitchen.post("/api/orders", json=order_payload()).json()["orderId"]

    order = kitchen.get(f"/api/kitchen/orders/{order_id}").json()
    assert order["phone"] == "+15551234567"
    assert order["status"] == "queued"
    assert order["options"] == {"spread": "Cream Cheese", "hashbrown": True}
    assert order["week_key"]


def test_confirmation_sms_is_sent(client: TestClient) -> None:
    client.post("/api/orders", json=order_payload(item="sandwich", options={"extraMeat": "bacon"}))

    sent = client.app.state.order_service.notifications.sent
    assert len(sent) == 1
    phone, message = sent[0]
    assert phone == "+15551234567"
    assert "sandwich on Saturday 10:00-10:30" in message


def test_missing_fields_rejected_and_nothing_stored(kitchen: TestClient) -> None:
    payload = order_payload(building_room="   ")
    del payload["phone"]

    response = kitchen.post("/api/orders", json=payload)

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "MISSING_FIELDS"
    assert set(body["missing"]) == {"building_room", "phone"}
    assert _kitchen_orders(kitchen)["count"] == 0


def test_payment_ready_false_counts_as_missing(client: TestClient) -> None:
    response = client.post("/api/orders", json=order_payload(payment_ready=False))

    assert response.status_code == 400
    assert response.json()["missing"] == ["payment_ready"]


def test_invalid_day_and_item_rejected(client: TestClient) -> None:
    assert client.post("/api/orders", json=order_payload(day="Monday")).status_code == 400
    assert client.post("/api/orders", json=order_payload(item="muffin")).status_code == 400


def test_slot_must_belong_to_day(client: TestClient) -> None:
    # 11:00-11:30 is only offered on Saturday
    response = client.post("/api/orders", json=order_payload(day="Sunday", slot="11:00-11:30"))

    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_SLOT"


def test_seventh_order_gets_slot_sold_out(kitchen: TestClient) -> None:
    for i in range(6):
        assert kitchen.post("/api/orders", json=order_payload(name=f"Guest {i}")).status_code == 201

    response = kitchen.post("/api/orders", json=order_payload(item="sandwich", options={}))

    assert response.status_code == 409
    assert response.json()["error"] == "SLOT_SOLD_OUT"
    assert _kitchen_orders(kitchen)["count"] == 6


def test_slot_availability(client: TestClient) -> None:
    for _ in range(6):
        client.post("/api/orders", json=order_payload(slot="10:30-11:00"))

    response = client.get("/api/slots", params={"day": "Saturday", "item": "bagel"})

    assert response.status_code == 200
    body = response.json()
    assert body["day"] == "Saturday"
    assert body["item"] == "bagel"
    slots = {s["value"]: s for s in body["slots"]}
    assert len(slots) == 8
    assert slots["10:30-11:00"]["soldOut"] is True
    assert slots["10:00-10:30"]["soldOut"] is False
    assert slots["10:00-10:30"]["label"] == "10:00–10:30"


def test_slot_availability_requires_valid_params(client: TestClient) -> None:
    assert client.get("/api/slots", params={"day": "Saturday"}).status_code == 400
    assert client.get("/api/slots", params={"day": "Friday", "item": "bagel"}).status_code == 400
    assert client.get("/api/slots", params={"day": "Sunday", "item": "pizza"}).status_code == 400


# =============================================================================
# SESSION
# =============================================================================

def test_management_routes_require_cookie(client: TestClient) -> None:
    assert client.get("/api/kitchen/orders").status_code == 401
    assert client.get("/api/kitchen/orders/1").status_code == 401
    assert client.patch("/api/manage/orders/1/status", json={"status": "ready"}).status_code == 401
    assert client.patch("/api/manage/orders/1", json={"slot": "10:30-11:00"}).status_code == 401
    assert client.delete("/api/manage/orders/1").status_code == 401
    assert client.post("/api/manage/reset-weekend").status_code == 401
    assert client.get("/api/manage/slots", params={"day": "Saturday"}).status_code == 401


def test_login_wrong_password(client: TestClient) -> None:
    response = client.post("/api/manage/login", json={"password": "nope"})

    assert response.status_code == 401
    assert "mgmt" not in response.cookies


def test_login_sets_cookie_and_logout_clears_it(client: TestClient) -> None:
    response = client.post("/api/manage/login", json={"password": KITCHEN_PASSWORD})
    assert response.status_code == 200
    assert response.cookies.get("mgmt")
    assert client.get("/api/kitchen/orders").status_code == 200

    client.post("/api/manage/logout")
    assert client.get("/api/kitchen/orders").status_code == 401


def test_forged_cookie_rejected(client: TestClient) -> None:
    client.cookies.set("mgmt", "0" * 64)

    response = client.get("/api/kitchen/orders")

    assert response.status_code == 401
    assert response.json()["error"] == "INVALID_SESSION"


# =============================================================================
# KITCHEN FLOW
# =============================================================================

def test_kitchen_list_filters(kitchen: TestClient) -> None:
    kitchen.post("/api/orders", json=order_payload(name="Ann"))
    kitchen.post("/api/orders", json=order_payload(name="Ben", item="sandwich", options={}))
    kitchen.post("/api/orders", json=order_payload(name="Cat", day="Sunday"))

    assert _kitchen_orders(kitchen)["count"] == 3
    assert _kitchen_orders(kitchen, day="all", item="all", status="all")["count"] == 3
    assert [o["name"] for o in _kitchen_orders(kitchen, item="sandwich")["orders"]] == ["Ben"]
    assert [o["name"] for o in _kitchen_orders(kitchen, day="Sunday")["orders"]] == ["Cat"]
    assert [o["name"] for o in _kitchen_orders(kitchen, q="an")["orders"]] == ["Ann"]
    assert _kitchen_orders(kitchen, limit=1)["count"] == 1


def test_kitchen_list_status_filter(kitchen: TestClient) -> None:
    ids = [kitchen.post("/api/orders", json=order_payload(name=n)).json()["orderId"] for n in ("A", "B", "C")]
    kitchen.patch(f"/api/manage/orders/{ids[0]}/status", json={"status": "ready"})
    kitchen.patch(f"/api/manage/orders/{ids[1]}/status", json={"status": "working"})

    assert {o["name"] for o in _kitchen_orders(kitchen, status="ready,working")["orders"]} == {"A", "B"}
    assert [o["name"] for o in _kitchen_orders(kitchen, status="queued")["orders"]] == ["C"]
    assert kitchen.get("/api/kitchen/orders", params={"status": "lost"}).status_code == 400
    assert kitchen.get("/api/kitchen/orders", params={"limit": 501}).status_code == 400


def test_kitchen_list_rejects_unknown_day_and_item(kitchen: TestClient) -> None:
    response = kitchen.get("/api/kitchen/orders", params={"day": "Monday"})
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_DAY"

    response = kitchen.get("/api/kitchen/orders", params={"item": "coffee"})
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_ITEM"


def test_get_unknown_order_404(kitchen: TestClient) -> None:
    response = kitchen.get("/api/kitchen/orders/424242")

    assert response.status_code == 404
    assert response.json()["error"] == "ORDER_NOT_FOUND"


def test_update_status(kitchen: TestClient) -> None:
    order_id = kitchen.post("/api/orders", json=order_payload()).json()["orderId"]

    assert kitchen.patch(f"/api/manage/orders/{order_id}/status", json={"status": "handed_off"}).status_code == 200
    assert kitchen.get(f"/api/kitchen/orders/{order_id}").json()["status"] == "handed_off"

    invalid = kitchen.patch(f"/api/manage/orders/{order_id}/status", json={"status": "eaten"})
    assert invalid.status_code == 400
    assert invalid.json()["error"] == "INVALID_STATUS"

    assert kitchen.patch("/api/manage/orders/424242/status", json={"status": "ready"}).status_code == 404


def test_reschedule_moves_order(kitchen: TestClient) -> None:
    order_id = kitchen.post("/api/orders", json=order_payload()).json()["orderId"]

    response = kitchen.patch(
        f"/api/manage/orders/{order_id}",
        json={"day": "Sunday", "slot": "12:00-12:30", "kitchen_notes": "moved by phone"},
    )

    assert response.status_code == 200
    body = response.json()
    assert (body["day"], body["slot"]) == ("Sunday", "12:00-12:30")
    assert body["kitchen_notes"] == "moved by phone"


def test_reschedule_item_change_reprices(kitchen: TestClient) -> None:
    order_id = kitchen.post(
        "/api/orders",
        json=order_payload(item="sandwich", options={"extraMeat": "bacon", "hashbrown": "yes"}),
    ).json()["orderId"]

    body = kitchen.patch(f"/api/manage/orders/{order_id}", json={"item": "bagel"}).json()

    assert body["item"] == "bagel"
    # bagel: base + truthy hashbrown, no spread option
    assert body["total_cents"] == 400


def test_reschedule_into_full_slot(kitchen: TestClient) -> None:
    for _ in range(6):
        kitchen.post("/api/orders", json=order_payload(slot="11:00-11:30"))
    order_id = kitchen.post("/api/orders", json=order_payload()).json()["orderId"]

    blocked = kitchen.patch(f"/api/manage/orders/{order_id}", json={"slot": "11:00-11:30"})
    assert blocked.status_code == 409
    assert blocked.json()["error"] == "SLOT_SOLD_OUT"

    forced = kitchen.patch(
        f"/api/manage/orders/{order_id}",
        json={"slot": "11:00-11:30", "overrideCapacity": True},
    )
    assert forced.status_code == 200
    assert forced.json()["slot"] == "11:00-11:30"


def test_reschedule_within_full_slot_allowed(kitchen: TestClient) -> None:
    ids = [kitchen.post("/api/orders", json=order_payload()).json()["orderId"] for _ in range(6)]

    response = kitchen.patch(
        f"/api/manage/orders/{ids[0]}",
        json={"day": "Saturday", "slot": "10:00-10:30", "item": "sandwich"},
    )

    assert response.status_code == 200


def test_reschedule_errors(kitchen: TestClient) -> None:
    order_id = kitchen.post("/api/orders", json=order_payload()).json()["orderId"]

    empty = kitchen.patch(f"/api/manage/orders/{order_id}", json={})
    assert empty.status_code == 400
    assert empty.json()["error"] == "NO_CHANGES"

    bad_slot = kitchen.patch(f"/api/manage/orders/{order_id}", json={"slot": "07:00-07:30"})
    assert bad_slot.status_code == 400
    assert bad_slot.json()["error"] == "INVALID_SLOT"

    assert kitchen.patch("/api/manage/orders/424242", json={"slot": "10:30-11:00"}).status_code == 404


def test_delete_order(kitchen: TestClient) -> None:
    order_id = kitchen.post("/api/orders", json=order_payload()).json()["orderId"]

    assert kitchen.delete(f"/api/manage/orders/{order_id}").status_code == 200
    assert kitchen.get(f"/api/kitchen/orders/{order_id}").status_code == 404
    assert kitchen.delete(f"/api/manage/orders/{order_id}").status_code == 404
    assert kitchen.delete("/api/manage/orders/not-a-number").status_code == 404


def test_resend_sms(kitchen: TestClient) -> None:
    order_id = kitchen.post("/api/orders", json=order_payload()).json()["orderId"]
    sent = kitchen.app.state.order_service.notifications.sent

    response = kitchen.post(f"/api/manage/orders/{order_id}/resend-sms")
    assert response.status_code == 200
    assert response.json()["sms"] == "sent"
    assert sent[-1] == ("+15551234567", "Your Bagel is ready for pickup!")

    kitchen.post(f"/api/manage/orders/{order_id}/resend-sms", json={"message": "Running late, 5 min"})
    assert sent[-1][1] == "Running late, 5 min"

    assert kitchen.post("/api/manage/orders/424242/resend-sms").status_code == 404


def test_resend_sms_failure_is_502(kitchen: TestClient) -> None:
    order_id = kitchen.post("/api/orders", json=order_payload()).json()["orderId"]
    kitchen.app.state.order_service.notifications.failure_rate = 1.0

    response = kitchen.post(f"/api/manage/orders/{order_id}/resend-sms")

    assert response.status_code == 502
    assert response.json()["error"] == "SMS_FAILED"


def test_resend_sms_without_provider_is_400(kitchen: TestClient, monkeypatch) -> None:
    order_id = kitchen.post("/api/orders", json=order_payload()).json()["orderId"]
    service = kitchen.app.state.order_service
    monkeypatch.setattr(service, "notifications", RealNotificationService(None, None, None))

    response = kitchen.post(f"/api/manage/orders/{order_id}/resend-sms")

    assert response.status_code == 400
    assert response.json()["error"] == "SMS_NOT_CONFIGURED"


def test_confirmation_sms_failure_keeps_order(client: TestClient) -> None:
    client.app.state.order_service.notifications.failure_rate = 1.0

    response = client.post("/api/orders", json=order_payload())

    assert response.status_code == 201
    assert response.json()["sms"] == "failed"


def test_reset_weekend_deletes_current_week_only(kitchen: TestClient, monkeypatch) -> None:
    with monkeypatch.context() as patch:
        patch.setattr(orders_module, "week_key", lambda instant=None, tz=None: "2020-01-06")
        kitchen.post("/api/orders", json=order_payload(name="Old"))
    kitchen.post("/api/orders", json=order_payload(name="New 1"))
    kitchen.post("/api/orders", json=order_payload(name="New 2"))

    response = kitchen.post("/api/manage/reset-weekend")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["deletedCount"] == 2
    assert _kitchen_orders(kitchen)["count"] == 0
    assert [o["name"] for o in _kitchen_orders(kitchen, week="2020-01-06")["orders"]] == ["Old"]


def test_manage_slots_report(kitchen: TestClient) -> None:
    for _ in range(2):
        kitchen.post("/api/orders", json=order_payload())
    kitchen.post("/api/orders", json=order_payload(item="sandwich", options={}))

    response = kitchen.get("/api/manage/slots", params={"day": "Saturday", "item": "bagel"})

    assert response.status_code == 200
    body = response.json()
    usage = {s["slot"]: s for s in body["slots"]}
    assert usage["10:00-10:30"] == {"slot": "10:00-10:30", "used": 3, "cap": 6, "soldOut": False}
    assert usage["10:30-11:00"]["used"] == 0
    assert kitchen.get("/api/manage/slots").status_code == 400


# =============================================================================
# HEALTH
# =============================================================================

def test_health(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "operational"
    assert body["store_backend"] == "sqlite"
