import io

from bson import ObjectId
from PIL import Image

from tests.conftest import PROPERTY_BODY


def test_create_property_with_new_owner_and_ref(authed, db, new_client):
    referrer = new_client()
    body = dict(PROPERTY_BODY)
    body.update(
        owner_type="new",
        owner={"name": "Vikram Singh", "email": "vikram@example.com", "phone": "+91-9876543215"},
        ref_type="existing",
        ref=referrer["id"],
        zoning="Mixed Use",
        zoning_note="Ground floor retail allowed",
        age={"year": 2015, "month": "March"},
    )
    response = authed.post("/api/properties", json=body)
    assert response.status_code == 201
    prop = response.json()["property"]
    assert prop["total_price"] == 25000000
    assert prop["zoning_note"] == "Ground floor retail allowed"
    assert prop["owner"]["name"] == "Vikram Singh"
    assert prop["ref"]["id"] == referrer["id"]
    assert prop["age_display"].endswith("(built March 2015)")

    owner = db["client"].find_one({"email": "vikram@example.com"})
    assert owner["status"] == "active"
    assert owner["active_roles"] == ["seller"]
    ref = db["client"].find_one({"_id": ObjectId(referrer["id"])})
    assert ref["active_roles"] == ["referrer"]
    assert db["clientrole"].count_documents({"property_id": ObjectId(prop["id"])}) == 2


def test_zoning_note_dropped_unless_mixed_use(new_property):
    prop = new_property(zoning="Residential", zoning_note="ignored")
    assert prop["zoning_note"] is None


def test_owner_link_must_match_type(authed, new_client):
    body = dict(PROPERTY_BODY, owner_type="new", owner=new_client()["id"])
    assert authed.post("/api/properties", json=body).status_code == 400

    body = dict(PROPERTY_BODY, owner_type="existing", owner=str(ObjectId()))
    response = authed.post("/api/properties", json=body)
    assert response.status_code == 404
    assert response.json()["detail"] == "Owner client not found"


def test_future_build_year_rejected(authed, new_client):
    body = dict(PROPERTY_BODY, owner_type="existing", owner=new_client()["id"], age={"year": 2999})
    assert authed.post("/api/properties", json=body).status_code == 400


def test_update_recomputes_total_price(authed, new_property):
    prop = new_property()
    response = authed.put(f"/api/properties/{prop['id']}", json={"area": 1200})
    assert response.status_code == 200
    assert response.json()["property"]["total_price"] == 1200 * 25000

    response = authed.put(f"/api/properties/{prop['id']}", json={"per_sq_ft_rate": 20000})
    assert response.json()["property"]["total_price"] == 1200 * 20000


def test_list_filters_and_search(authed, new_property):
    new_property(title="Bandra Sea Face Flat", city="Mumbai")
    new_property(title="Koramangala Villa", city="Bangalore", type="Villa")

    response = authed.get("/api/properties", params={"city": "bangalore"})
    assert [p["title"] for p in response.json()["properties"]] == ["Koramangala Villa"]

    response = authed.get("/api/properties", params={"search": "sea face"})
    assert response.json()["pagination"]["total"] == 1

    response = authed.get("/api/properties", params={"type": "Villa"})
    assert response.json()["pagination"]["total"] == 1


def test_soft_delete_releases_roles(authed, db, new_client, new_property):
    owner = new_client()
    prop = new_property(owner_id=owner["id"])
    assert db["client"].find_one({"_id": ObjectId(owner["id"])})["status"] == "active"

    response = authed.delete(f"/api/properties/{prop['id']}")
    assert response.status_code == 200

    stored = db["property"].find_one({"_id": ObjectId(prop["id"])})
    assert stored["is_active"] is False
    assert authed.get("/api/properties").json()["pagination"]["total"] == 0

    owner_doc = db["client"].find_one({"_id": ObjectId(owner["id"])})
    assert owner_doc["status"] == "inactive"
    assert owner_doc["active_roles"] == []
    role = db["clientrole"].find_one({"property_id": ObjectId(prop["id"])})
    assert role["status"] == "inactive"


def test_attach_file_to_property(authed, db, new_property):
    prop = new_property()
    buf = io.BytesIO()
    Image.new("RGB", (64, 64), "navy").save(buf, format="PNG")

    response = authed.post(
        f"/api/properties/{prop['id']}/files",
        files={"file": ("front.png", buf.getvalue(), "image/png")},
    )
    assert response.status_code == 201
    file_ref = response.json()["file"]
    assert file_ref["drive_id"].startswith("mock_")

    stored = db["property"].find_one({"_id": ObjectId(prop["id"])})
    assert [f["name"] for f in stored["files"]] == ["front.png"]
    assert db["photo"].count_documents({}) == 1


def test_update_rejects_null_price_inputs(authed, db, new_property):
    prop = new_property()
    for field in ("area", "per_sq_ft_rate", "title", "status"):
        response = authed.put(f"/api/properties/{prop['id']}", json={field: None})
        assert response.status_code == 400, field
        assert response.json()["detail"] == "Validation failed"
    stored = db["property"].find_one({"_id": ObjectId(prop["id"])})
    assert stored["total_price"] == 25000000

    cleared = authed.put(f"/api/properties/{prop['id']}", json={"notes": None, "assigned_to": None})
    assert cleared.status_code == 200


def test_inline_contacts_checked_before_any_client_is_created(authed, db, new_client):
    body = dict(PROPERTY_BODY)
    body.update(
        owner_type="new",
        owner={"name": "Owner One", "email": "dup@example.com", "phone": "+91-9000000001"},
        ref_type="new",
        ref={"name": "Ref One", "email": "dup@example.com", "phone": "+91-9000000002"},
    )
    response = authed.post("/api/properties", json=body)
    assert response.status_code == 400
    assert db["client"].count_documents({}) == 0

    new_client(email="taken@example.com")
    body["ref"] = {"name": "Ref One", "email": "taken@example.com", "phone": "+91-9000000002"}
    response = authed.post("/api/properties", json=body)
    assert response.status_code == 400
    assert response.json()["detail"] == "A client with this email already exists"
    assert db["client"].count_documents({}) == 1

    body.update(ref_type="existing", ref=str(ObjectId()))
    response = authed.post("/api/properties", json=body)
    assert response.status_code == 404
    assert db["client"].count_documents({}) == 1
    assert db["property"].count_documents({}) == 0


def test_soft_deleted_property_is_not_found(authed, new_property):
    prop = new_property()
    assert authed.delete(f"/api/properties/{prop['id']}").status_code == 200

    assert authed.get(f"/api/properties/{prop['id']}").status_code == 404
    assert authed.put(f"/api/properties/{prop['id']}", json={"title": "Relisted flat"}).status_code == 404
    assert authed.delete(f"/api/properties/{prop['id']}").status_code == 404
    response = authed.post(
        f"/api/properties/{prop['id']}/files",
        files={"file": ("front.gif", b"GIF89a", "image/gif")},
    )
    assert response.status_code == 404
