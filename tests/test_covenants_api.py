from datetime import date
from uuid import uuid4

from app.models.covenant import Covenant
from app.models.facility import Facility
from app.models.notification import Notification

from conftest import FakeResult, entity_handler, make_auth, make_covenant, make_facility, make_user


def _wire(db, facility, *covenants):
    db.on_get(Facility, facility.id, facility)
    for covenant in covenants:
        db.on_get(Covenant, covenant.id, covenant)
    db.on_execute(entity_handler(Covenant, FakeResult(items=list(covenants))))
    db.on_execute(entity_handler(Facility, FakeResult(items=[facility])))


def test_check_covenant_returns_enveloped_result(client, fake_db):
    owner = make_user()
    facility = make_facility(gp_user_id=owner.id)
    covenant = make_covenant(facility, threshold_value=70)
    _wire(fake_db, facility, covenant)

    response = client.post(f"/api/v1/covenants/{covenant.id}/check", json={"current_value": 72})

    assert response.status_code == 200
    body = response.json()
    assert body["code"] == "ok"
    (item,) = body["data"]["results"]
    assert item["outcome"] == "checked"
    assert item["new_status"] == "breach"
    assert item["breach_detected"] is True
    assert item["notification_id"]
    assert body["data"]["summary"]["new_breaches"] == 1
    assert len(fake_db.persisted_of(Notification)) == 1


def test_check_covenant_with_null_value_is_skipped(client, fake_db):
    facility = make_facility()
    covenant = make_covenant(facility, status="compliant", current_value=10)
    _wire(fake_db, facility, covenant)

    response = client.post(f"/api/v1/covenants/{covenant.id}/check", json={"current_value": None})

    assert response.status_code == 200
    (item,) = response.json()["data"]["results"]
    assert item == {"outcome": "skipped", "covenant_id": str(covenant.id), "reason": "no_current_value"}


def test_check_covenant_requires_value_field(client, fake_db):
    response = client.post(f"/api/v1/covenants/{uuid4()}/check", json={})
    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"


def test_check_unknown_covenant_is_404(client, fake_db):
    response = client.post(f"/api/v1/covenants/{uuid4()}/check", json={"current_value": 1})
    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


def test_gp_cannot_trigger_check(client, auth_override, fake_db):
    auth_override(make_auth("gp"))
    response = client.post(f"/api/v1/covenants/{uuid4()}/check", json={"current_value": 1})
    assert response.status_code == 403
    assert response.json()["message"] == "Missing permission: covenant.check"


def test_facility_check_with_partial_failure_still_200(client, fake_db):
    facility = make_facility(gp_user_id=uuid4())
    ltv = make_covenant(facility, threshold_value=70)
    nav = make_covenant(facility, covenant_type="minimum_nav", threshold_operator="greater_than_equal", threshold_value=80)
    _wire(fake_db, facility, ltv, nav)
    fake_db.fail_commits = 1

    response = client.post(
        f"/api/v1/facilities/{facility.id}/covenants/check",
        json={"values": {str(ltv.id): 72, str(nav.id): 85}},
    )

    assert response.status_code == 200
    data = response.json()["data"]
    outcomes = {item["covenant_id"]: item for item in data["results"]}
    assert outcomes[str(ltv.id)]["outcome"] == "failed"
    assert outcomes[str(nav.id)]["new_status"] == "warning"
    assert data["summary"] == {"checked": 1, "skipped": 0, "failed": 1, "breaches": 0, "new_breaches": 0}


def test_facility_check_rejects_foreign_covenant(client, fake_db):
    facility = make_facility()
    _wire(fake_db, facility, make_covenant(facility))

    response = client.post(
        f"/api/v1/facilities/{facility.id}/covenants/check",
        json={"values": {str(uuid4()): 1}},
    )

    assert response.status_code == 400
    assert "not on this facility" in response.json()["message"]


def test_facility_check_without_body_uses_stored_values(client, fake_db):
    facility = make_facility()
    covenant = make_covenant(facility, threshold_value=70, current_value=30)
    _wire(fake_db, facility, covenant)

    response = client.post(f"/api/v1/facilities/{facility.id}/covenants/check")

    assert response.status_code == 200
    (item,) = response.json()["data"]["results"]
    assert item["new_status"] == "compliant"


def test_gp_sees_only_owned_facility(client, auth_override, fake_db):
    gp = make_user()
    auth_override(make_auth("gp", user_id=gp.id))
    theirs = make_facility(gp_user_id=gp.id)
    someone_elses = make_facility(gp_user_id=uuid4())
    fake_db.on_get(Facility, theirs.id, theirs)
    fake_db.on_get(Facility, someone_elses.id, someone_elses)

    assert client.get(f"/api/v1/facilities/{theirs.id}").status_code == 200
    assert client.get(f"/api/v1/facilities/{someone_elses.id}").status_code == 404


def test_create_covenant_starts_unchecked(client, fake_db):
    facility = make_facility()
    fake_db.on_get(Facility, facility.id, facility)

    response = client.post(
        f"/api/v1/facilities/{facility.id}/covenants",
        json={
            "covenant_type": " LTV_Ratio ",
            "threshold_operator": "less_than_equal",
            "threshold_value": 65,
            "check_frequency": "monthly",
            "next_check_date": "2026-04-30",
        },
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["covenant_type"] == "ltv_ratio"
    assert data["status"] is None
    assert data["breach_notified"] is False
    (created,) = fake_db.persisted_of(Covenant)
    assert created.facility_id == facility.id


def test_create_covenant_rejects_unknown_operator(client, fake_db):
    facility = make_facility()
    fake_db.on_get(Facility, facility.id, facility)

    response = client.post(
        f"/api/v1/facilities/{facility.id}/covenants",
        json={"covenant_type": "ltv", "threshold_operator": "between", "threshold_value": 65},
    )

    assert response.status_code == 422


def test_patch_covenant_edits_terms_only(client, fake_db):
    facility = make_facility()
    covenant = make_covenant(facility, threshold_value=70, status="breach", breach_notified=True)
    _wire(fake_db, facility, covenant)

    response = client.patch(
        f"/api/v1/covenants/{covenant.id}",
        json={"threshold_value": 75, "next_check_date": "2026-05-01", "status": "compliant"},
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["threshold_value"] == 75
    assert data["next_check_date"] == date(2026, 5, 1).isoformat()
    assert data["status"] == "breach"
    assert data["breach_notified"] is True


def test_breach_summary_endpoint(client, fake_db):
    facility = make_facility()
    _wire(
        fake_db,
        facility,
        make_covenant(facility, status="breach", current_value=80),
        make_covenant(facility, status="compliant"),
    )

    response = client.get(f"/api/v1/facilities/{facility.id}/covenants/summary")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["breach"] == 1
    assert data["compliant"] == 1
    assert len(data["breaches"]) == 1


def test_check_due_requires_operations(client, auth_override, fake_db):
    auth_override(make_auth("lender"))
    response = client.post("/api/v1/covenants/check-due", json={"as_of": "2026-03-31"})
    assert response.status_code == 403


def test_check_due_runs_for_tenant(client, fake_db):
    facility = make_facility(gp_user_id=uuid4())
    due = make_covenant(facility, threshold_value=70, current_value=50, next_check_date=date(2026, 3, 1))
    _wire(fake_db, facility, due)

    response = client.post("/api/v1/covenants/check-due", json={"as_of": "2026-03-31"})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["facility_id"] is None
    assert data["summary"]["checked"] == 1
