import pytest
from fastapi.testclient import TestClient

from matchfeed.api import app


@pytest.fixture
def client(store):
    with TestClient(app) as c:
        yield c


def test_healthz(client):
    assert client.get("/healthz").json() == {"ok": True}


def test_candidates_endpoint(client, seed, prefs):
    seed("viewer", gender="male")
    prefs("viewer", looking_for_gender="female")
    seed("f1", interests=["yoga"])
    seed("m1", gender="male")

    body = client.get("/candidates/viewer").json()

    assert [c["id"] for c in body] == ["f1"]
    assert body[0]["interests"] == ["yoga"]
    assert body[0]["media_type"] == "photo"


def test_candidates_for_unknown_viewer_is_empty(client):
    resp = client.get("/candidates/ghost")
    assert resp.status_code == 200 and resp.json() == []


def test_like_flow(client, seed):
    seed("a"); seed("b", first_name="Bo", last_name="")

    first = client.post("/likes", json={"liker_id": "a", "liked_id": "b"}).json()
    dup = client.post("/likes", json={"liker_id": "a", "liked_id": "b"}).json()
    back = client.post("/likes", json={"liker_id": "b", "liked_id": "a"}).json()

    assert first["matched"] is False and first["duplicate"] is False
    assert dup["duplicate"] is True
    assert back["matched"] is True and back["match_created"] is True
    assert [r["name"] for r in client.get("/matches/a").json()] == ["Bo"]
    assert [r["user_id"] for r in client.get("/likes/incoming/b").json()] == ["a"]
    outgoing = client.get("/likes/outgoing/b").json()
    assert [r["user_id"] for r in outgoing] == ["a"]
    assert outgoing[0]["city"] == "Lisbon" and outgoing[0]["media_type"] == "photo"

    again = client.post("/likes/reconcile", json={"liker_id": "a", "liked_id": "b"}).json()
    assert again["matched"] is True and again["match_created"] is False


def test_self_like_is_bad_request(client):
    assert client.post("/likes", json={"liker_id": "a", "liked_id": "a"}).status_code == 400


def test_candidates_with_open_age_bounds(client, seed, prefs):
    seed("viewer")
    prefs("viewer", age_min=None, age_max=None)
    seed("c1")

    resp = client.get("/candidates/viewer")

    assert resp.status_code == 200
    assert [c["id"] for c in resp.json()] == ["c1"]
