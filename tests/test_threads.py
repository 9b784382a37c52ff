from tests.conftest import auth_headers, make_user


def test_thread_messaging(authed, client, agent, manager, new_client):
    lead = new_client()
    response = authed.post("/api/threads", json={
        "title": "Offer for Powai flat", "participants": [str(manager["_id"])], "client": lead["id"],
    })
    assert response.status_code == 201
    thread = response.json()["thread"]
    assert {p["email"] for p in thread["participants"]} == {"agent@test.com", "manager@test.com"}
    assert thread["client"]["name"] == lead["name"]

    first = authed.post(f"/api/threads/{thread['id']}/messages", json={"content": "Buyer offered 2.4 Cr"})
    assert first.status_code == 201
    assert first.json()["data"]["sender"]["email"] == "agent@test.com"
    reply = client.post(f"/api/threads/{thread['id']}/messages", json={"content": "Counter at 2.5"},
                        headers=auth_headers(manager))
    assert reply.status_code == 201

    messages = authed.get(f"/api/threads/{thread['id']}/messages").json()["messages"]
    assert [m["content"] for m in messages] == ["Buyer offered 2.4 Cr", "Counter at 2.5"]

    read = authed.post(f"/api/threads/{thread['id']}/read").json()
    assert read["updated"] == 1
    again = authed.post(f"/api/threads/{thread['id']}/read").json()
    assert again["updated"] == 0


def test_threads_listed_for_participants_only(authed, client, db, manager):
    outsider = make_user(db, "outsider@test.com")
    authed.post("/api/threads", json={"title": "Internal"})

    assert authed.get("/api/threads").json()["pagination"]["total"] == 1
    assert client.get("/api/threads", headers=auth_headers(outsider)).json()["pagination"]["total"] == 0


def test_deleted_thread_is_hidden(authed):
    thread = authed.post("/api/threads", json={"title": "Old"}).json()["thread"]
    assert authed.delete(f"/api/threads/{thread['id']}").status_code == 200
    assert authed.get(f"/api/threads/{thread['id']}").status_code == 404
    assert authed.get("/api/threads").json()["pagination"]["total"] == 0
