"""HTTP surface of /api/v1/meetings."""

from tests.helpers.ledger_helpers import SLOT_DATE, SLOT_TIME, credits_of, wallet_of

MEETINGS = "/api/v1/meetings"


def _book(client, auth_as, requester, host):
    return client.post(
        MEETINGS,
        json={
            "target_id": host.id,
            "slot_date": SLOT_DATE.isoformat(),
            "slot_time": SLOT_TIME.isoformat(),
        },
        headers=auth_as(requester),
    )


def test_requires_caller_identity(client):
    response = client.get(MEETINGS)

    assert response.status_code == 401
    body = response.json()
    assert body["status"] == 401
    assert body["detail"] == "Missing authenticated user"


def test_unknown_caller_is_rejected(client):
    response = client.get(MEETINGS, headers={"X-User-Id": "01HF4G12ABCDEF3456789XYZAB"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Unknown user"


def test_book_and_list(client, auth_as, make_user, add_slot, db):
    requester, host = make_user(credits=2), make_user()
    add_slot(host)

    created = _book(client, auth_as, requester, host)

    assert created.status_code == 201
    meeting = created.json()
    assert meeting["status"] == "pending"
    assert meeting["host_id"] == host.id
    assert meeting["credits_held"] == 1
    assert {p["user_id"] for p in meeting["participants"]} == {requester.id, host.id}
    assert credits_of(db, requester).used == 1

    listed = client.get(MEETINGS, params={"status": "pending"}, headers=auth_as(host))
    assert listed.status_code == 200
    assert [m["id"] for m in listed.json()["items"]] == [meeting["id"]]


def test_booking_without_credits_is_payment_required(client, auth_as, make_user, add_slot):
    requester, host = make_user(), make_user()
    add_slot(host)

    response = _book(client, auth_as, requester, host)

    assert response.status_code == 402
    assert response.json()["code"] == "insufficient_credits"


def test_booking_unpublished_slot_conflicts(client, auth_as, make_user):
    requester, host = make_user(credits=1), make_user()

    response = _book(client, auth_as, requester, host)

    assert response.status_code == 409


def test_host_accepts(client, auth_as, make_user, add_slot):
    requester, host = make_user(credits=1), make_user()
    add_slot(host)
    meeting_id = _book(client, auth_as, requester, host).json()["id"]

    response = client.post(
        f"{MEETINGS}/{meeting_id}/respond", json={"action": "accept"}, headers=auth_as(host)
    )

    assert response.status_code == 200
    body = response.json()
    assert body["confirmed"] is True
    assert body["meeting"]["status"] == "confirmed"


def test_outsider_cannot_read_meeting(client, auth_as, make_user, add_slot):
    requester, host, outsider = make_user(credits=1), make_user(), make_user()
    add_slot(host)
    meeting_id = _book(client, auth_as, requester, host).json()["id"]

    response = client.get(f"{MEETINGS}/{meeting_id}", headers=auth_as(outsider))

    assert response.status_code == 403


def test_malformed_meeting_id(client, auth_as, make_user):
    response = client.get(f"{MEETINGS}/not-a-ulid", headers=auth_as(make_user()))

    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"


def test_cancel_needs_acknowledgement(client, auth_as, make_user, add_slot, db):
    requester, host = make_user(credits=1, wallet_cents=1000), make_user()
    add_slot(host)
    meeting_id = _book(client, auth_as, requester, host).json()["id"]

    preview = client.get(
        f"{MEETINGS}/{meeting_id}/cancellation-preview", headers=auth_as(requester)
    )
    assert preview.status_code == 200
    assert preview.json()["fee_cents"] == 500
    assert preview.json()["requires_confirmation"] is True

    unconfirmed = client.post(f"{MEETINGS}/{meeting_id}/cancel", headers=auth_as(requester))
    assert unconfirmed.status_code == 409
    assert unconfirmed.json()["requires_confirmation"] is True
    assert unconfirmed.json()["fee_cents"] == 500
    assert wallet_of(db, requester).balance_cents == 1000

    confirmed = client.post(
        f"{MEETINGS}/{meeting_id}/cancel",
        json={"confirmed": True, "reason": "Schedule changed"},
        headers=auth_as(requester),
    )
    assert confirmed.status_code == 200
    body = confirmed.json()
    assert body["meeting"]["status"] == "canceled"
    assert body["fee_charged_cents"] == 500
    assert body["credits_refunded"] == 1
    assert wallet_of(db, requester).balance_cents == 500


def test_finalize_before_start_is_rejected(client, auth_as, make_user, add_slot):
    requester, host = make_user(credits=1), make_user()
    add_slot(host)
    meeting_id = _book(client, auth_as, requester, host).json()["id"]
    client.post(
        f"{MEETINGS}/{meeting_id}/respond", json={"action": "accept"}, headers=auth_as(host)
    )

    response = client.post(
        f"{MEETINGS}/{meeting_id}/finalize",
        json={"outcome": "completed", "charge_decision": "capture"},
        headers=auth_as(host),
    )

    assert response.status_code == 422
    assert response.json()["code"] == "meeting_not_started"


def test_unknown_request_fields_are_rejected(client, auth_as, make_user):
    response = client.post(
        MEETINGS,
        json={"target_id": "x", "slot_date": "2030-06-01", "slot_time": "18:00", "vip": True},
        headers=auth_as(make_user()),
    )

    assert response.status_code == 422
