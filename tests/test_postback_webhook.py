"""
Tests for the postback ingestion endpoint.

Covers idempotency, the one-time CPA rule, lookup failures, token checks and
the audit log trail each attempt leaves behind.
"""
import json
from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from betlink.models import Conversion, PostbackLog


def _logs(db):
    db.expire_all()
    return db.query(PostbackLog).order_by(PostbackLog.id).all()


def test_cpa_postback_creates_conversion(client: TestClient, db, cpa_house, affiliate):
    resp = client.get(
        "/webhook/betwin/deposit",
        params={"subid": "aff_joao", "amount": "100.00", "customer_id": "c-1"},
    )

    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["commission"] == 105.0
    assert data["masterCommission"] == 45.0
    assert data["type"] == "CPA"
    assert data["affiliate"] == "aff_joao"
    assert data["house"] == "BetWin"
    assert data["event"] == "deposit"
    assert data["duplicate"] is False
    assert isinstance(data["logId"], int)

    conversion = db.query(Conversion).one()
    assert conversion.cpa_paid is True
    assert conversion.source == "postback"
    assert str(conversion.affiliate_commission) == "105.00"
    assert conversion.conversion_data["source"] == "postback"

    log = _logs(db)[0]
    assert log.status == "SUCCESS"
    assert log.details["conversion_id"] == conversion.id


def test_same_postback_twice_is_idempotent(client: TestClient, db, cpa_house, affiliate):
    params = {"subid": "aff_joao", "amount": "100", "customer_id": "c-1"}

    first = client.get("/webhook/betwin/deposit", params=params)
    second = client.get("/webhook/betwin/deposit", params=params)

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json()["commission"] == 0
    assert second.json()["duplicate"] is True
    assert second.json()["logId"] != first.json()["logId"]

    assert db.query(Conversion).count() == 1
    logs = _logs(db)
    assert [log.status for log in logs] == ["SUCCESS", "SUCCESS"]
    assert logs[1].details["duplicate"] is True


def test_cpa_paid_only_once_per_customer(client: TestClient, db, cpa_house, affiliate):
    first = client.get(
        "/webhook/betwin/first_deposit",
        params={"subid": "aff_joao", "amount": "100", "customer_id": "c-9"},
    )
    second = client.get(
        "/webhook/betwin/deposit",
        params={"subid": "aff_joao", "amount": "300", "customer_id": "c-9"},
    )

    assert first.json()["commission"] == 105.0
    assert second.status_code == 200
    assert second.json()["commission"] == 0
    assert "already paid" in second.json()["reason"]

    conversions = db.query(Conversion).order_by(Conversion.id).all()
    assert len(conversions) == 2
    assert [c.cpa_paid for c in conversions] == [True, False]


def test_minimum_deposit_gate(client: TestClient, db, cpa_house, affiliate):
    resp = client.get(
        "/webhook/betwin/deposit",
        params={"subid": "aff_joao", "amount": "30", "customer_id": "c-2"},
    )

    assert resp.status_code == 200
    data = resp.json()
    assert data["commission"] == 0
    assert data["reason"]
    assert data["logId"]


def test_revshare_postback_via_form_post(client: TestClient, db, revshare_house, affiliate):
    resp = client.post(
        "/webhook/luckybet/profit",
        data={"subid": "aff_joao", "amount": "100", "customer_id": "c-3"},
    )

    assert resp.status_code == 200
    assert resp.json()["commission"] == 57.14
    assert resp.json()["masterCommission"] == 42.86


def test_json_body_overrides_query(client: TestClient, db, revshare_house, affiliate):
    resp = client.post(
        "/webhook/luckybet/profit?amount=1",
        json={"subid": "aff_joao", "amount": "35", "customer_id": "c-4"},
    )

    assert resp.status_code == 200
    assert resp.json()["commission"] == 20.0


def test_house_identifier_is_case_insensitive(client: TestClient, cpa_house, affiliate):
    resp = client.get("/webhook/BetWin/registration", params={"subid": "aff_joao", "customer_id": "c-5"})
    assert resp.status_code == 200
    assert resp.json()["commission"] == 0
    assert resp.json()["reason"]


def test_unknown_house(client: TestClient, db, affiliate):
    resp = client.get("/webhook/nohouse/deposit", params={"subid": "aff_joao", "amount": "100"})

    assert resp.status_code == 404
    data = resp.json()
    assert data["success"] is False
    assert data["error"]
    assert data["logId"]
    assert _logs(db)[0].status == "ERROR_HOUSE_NOT_FOUND"


def test_inactive_house_is_not_found(client: TestClient, db, make_house, affiliate):
    make_house(identifier="closed", is_active=False)
    resp = client.get("/webhook/closed/deposit", params={"subid": "aff_joao", "amount": "100"})
    assert resp.status_code == 404


def test_unknown_affiliate(client: TestClient, db, cpa_house):
    resp = client.get("/webhook/betwin/deposit", params={"subid": "ghost", "amount": "100"})

    assert resp.status_code == 404
    assert resp.json()["logId"]
    assert _logs(db)[0].status == "ERROR_AFFILIATE_NOT_FOUND"
    assert db.query(Conversion).count() == 0


def test_missing_subid(client: TestClient, db, cpa_house):
    resp = client.get("/webhook/betwin/deposit", params={"amount": "100"})

    assert resp.status_code == 400
    assert "subid" in resp.json()["error"]
    assert _logs(db)[0].status == "ERROR_VALIDATION"


def test_unknown_event_type(client: TestClient, db, cpa_house, affiliate):
    resp = client.get("/webhook/betwin/jackpot", params={"subid": "aff_joao"})
    assert resp.status_code == 400
    assert _logs(db)[0].status == "ERROR_VALIDATION"


def test_non_numeric_amount(client: TestClient, db, cpa_house, affiliate):
    resp = client.get("/webhook/betwin/deposit", params={"subid": "aff_joao", "amount": "abc"})
    assert resp.status_code == 400
    assert "amount" in resp.json()["error"]


def test_token_required(client: TestClient, db, make_house, affiliate):
    make_house(identifier="secure", api_config={"postback": {"require_token": True}})

    denied = client.get("/webhook/secure/registration", params={"subid": "aff_joao", "token": "wrong"})
    allowed = client.get(
        "/webhook/secure/registration",
        params={"subid": "aff_joao", "token": "secret-token", "customer_id": "c-7"},
    )

    assert denied.status_code == 401
    assert allowed.status_code == 200
    logs = _logs(db)
    assert logs[0].status == "ERROR_VALIDATION"
    assert "secret-token" not in logs[1].raw_request
    assert json.loads(logs[1].raw_request)["query"]["token"] == "[REDACTED]"


def test_disabled_event(client: TestClient, make_house, affiliate):
    make_house(identifier="narrow", api_config={"postback": {"enabled_events": ["deposit"]}})
    resp = client.get("/webhook/narrow/click", params={"subid": "aff_joao"})
    assert resp.status_code == 400


def test_concurrent_duplicate_lost_race(client: TestClient, db, cpa_house, affiliate):
    """With the pre-check bypassed, the unique constraint still keeps one row."""
    params = {"subid": "aff_joao", "amount": "100", "customer_id": "c-race"}

    with patch("betlink.services.dedup.DedupGuard.is_duplicate", return_value=False):
        first = client.get("/webhook/betwin/deposit", params=params)
        second = client.get("/webhook/betwin/deposit", params=params)

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json()["duplicate"] is True
    assert second.json()["commission"] == 0
    assert db.query(Conversion).count() == 1
    assert [log.status for log in _logs(db)] == ["SUCCESS", "SUCCESS"]


def test_unexpected_error_finalizes_log(client: TestClient, db, cpa_house, affiliate):
    with patch(
        "betlink.services.store.ConversionStore.insert_conversion",
        side_effect=OperationalError("INSERT", {}, Exception("db down")),
    ):
        resp = client.get(
            "/webhook/betwin/deposit",
            params={"subid": "aff_joao", "amount": "100", "customer_id": "c-err"},
        )

    assert resp.status_code == 500
    data = resp.json()
    assert data["success"] is False
    assert data["error"] == "Internal processing error"
    assert "db down" not in resp.text
    assert _logs(db)[0].status == "ERROR_PROCESSING"
    assert db.query(Conversion).count() == 0
