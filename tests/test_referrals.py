from bson import ObjectId

from tests.conftest import auth_headers

COMMISSION = {"type": "fixed", "value": 100000, "promised": 100000}


def create_referral(authed, **body):
    body.setdefault("commission", COMMISSION)
    response = authed.post("/api/referrals", json=body)
    assert response.status_code == 201, response.text
    return response.json()["referral"]


def test_client_referral_chain(authed, new_client):
    first, second, third = new_client(), new_client(), new_client()
    root = create_referral(authed, referred_by_client_id=first["id"], referred_type="client",
                           referred_client_id=second["id"])
    assert root["chain_level"] == 1
    assert root["commission"]["paid"] == 0
    assert root["commission_status"] == "pending"
    assert root["referred_by"]["name"] == first["name"]
    assert root["referred_client"]["name"] == second["name"]
    assert root["commission_display"] == "₹100,000"
    assert root["remaining_commission"] == 100000

    child = create_referral(authed, referred_by_client_id=second["id"], referred_type="client",
                            referred_client_id=third["id"], parent_referral_id=root["id"])
    assert child["chain_level"] == 2
    assert child["parent_referral"]["id"] == root["id"]


def test_property_referral(authed, new_client, new_property):
    referrer = new_client()
    prop = new_property()
    referral = create_referral(authed, referred_by_client_id=referrer["id"], referred_type="property",
                               referred_property_id=prop["id"])
    assert referral["referred_property"]["title"] == prop["title"]
    assert referral["referred_client"] is None


def test_referral_target_must_match_type(authed, new_client, new_property):
    referrer, other = new_client(), new_client()
    response = authed.post("/api/referrals", json={
        "referred_by_client_id": referrer["id"], "referred_type": "client", "commission": COMMISSION,
    })
    assert response.status_code == 400

    response = authed.post("/api/referrals", json={
        "referred_by_client_id": referrer["id"], "referred_type": "property",
        "referred_client_id": other["id"], "referred_property_id": new_property()["id"],
        "commission": COMMISSION,
    })
    assert response.status_code == 400

    response = authed.post("/api/referrals", json={
        "referred_by_client_id": referrer["id"], "referred_type": "client",
        "referred_client_id": str(ObjectId()), "commission": COMMISSION,
    })
    assert response.status_code == 404


def test_missing_parent_referral(authed, new_client):
    a, b = new_client(), new_client()
    response = authed.post("/api/referrals", json={
        "referred_by_client_id": a["id"], "referred_type": "client", "referred_client_id": b["id"],
        "parent_referral_id": str(ObjectId()), "commission": COMMISSION,
    })
    assert response.status_code == 404
    assert response.json()["detail"] == "Parent referral not found"


def test_payments_drive_commission_status(authed, new_client):
    a, b = new_client(), new_client()
    referral = create_referral(authed, referred_by_client_id=a["id"], referred_type="client",
                               referred_client_id=b["id"])

    partial = authed.put(f"/api/referrals/{referral['id']}", json={"commission": {"paid": 40000}})
    assert partial.status_code == 200
    body = partial.json()["referral"]
    assert body["commission_status"] == "partial"
    assert body["commission"]["promised"] == 100000
    assert body["commission_percentage_paid"] == 40
    assert body["paid_at"] is None

    paid = authed.put(f"/api/referrals/{referral['id']}", json={"commission": {"paid": 100000}})
    body = paid.json()["referral"]
    assert body["commission_status"] == "paid"
    assert body["paid_at"] is not None
    assert body["remaining_commission"] == 0


def test_conversion_is_stamped(authed, new_client):
    a, b = new_client(), new_client()
    referral = create_referral(authed, referred_by_client_id=a["id"], referred_type="client",
                               referred_client_id=b["id"])
    response = authed.put(f"/api/referrals/{referral['id']}", json={"status": "converted"})
    converted_at = response.json()["referral"]["converted_at"]
    assert converted_at is not None

    response = authed.put(f"/api/referrals/{referral['id']}", json={"notes": "Deal closed"})
    assert response.json()["referral"]["converted_at"] == converted_at


def test_referral_lists_and_stats(authed, new_client):
    a, b, c = new_client(name="Anita Desai"), new_client(), new_client()
    first = create_referral(authed, referred_by_client_id=a["id"], referred_type="client",
                            referred_client_id=b["id"])
    create_referral(authed, referred_by_client_id=b["id"], referred_type="client", referred_client_id=c["id"],
                    commission={"type": "percentage", "value": 1, "promised": 50000})
    authed.put(f"/api/referrals/{first['id']}", json={"commission": {"paid": 25000}})

    by_client = authed.get(f"/api/referrals/client/{a['id']}").json()["referrals"]
    assert [r["id"] for r in by_client] == [first["id"]]

    searched = authed.get("/api/referrals", params={"search": "anita"}).json()
    assert searched["pagination"]["total"] == 1

    stats = authed.get("/api/referrals/stats/overview").json()
    assert stats["overview"]["total_referrals"] == 2
    assert stats["overview"]["total_commission_promised"] == 150000
    assert stats["overview"]["total_commission_paid"] == 25000
    by_status = {row["_id"]: row["count"] for row in stats["by_commission_status"]}
    assert by_status == {"partial": 1, "pending": 1}


def test_delete_referral_requires_manager(authed, client, manager, new_client, db):
    a, b = new_client(), new_client()
    referral = create_referral(authed, referred_by_client_id=a["id"], referred_type="client",
                               referred_client_id=b["id"])
    assert authed.delete(f"/api/referrals/{referral['id']}").status_code == 403
    response = client.delete(f"/api/referrals/{referral['id']}", headers=auth_headers(manager))
    assert response.status_code == 200
    assert db["referral"].count_documents({}) == 0


def test_update_rejects_null_statuses(authed, db, new_client):
    a, b = new_client(), new_client()
    referral = create_referral(authed, referred_by_client_id=a["id"], referred_type="client",
                               referred_client_id=b["id"])
    response = authed.put(f"/api/referrals/{referral['id']}", json={"status": None, "commission_status": None})
    assert response.status_code == 400
    response = authed.put(f"/api/referrals/{referral['id']}", json={"commission": {"paid": None}})
    assert response.status_code == 400

    stored = db["referral"].find_one({"_id": ObjectId(referral["id"])})
    assert (stored["status"], stored["commission_status"]) == ("active", "pending")
    assert stored["commission"]["paid"] == 0
