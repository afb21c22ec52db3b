import uuid
from datetime import datetime, timedelta, timezone

import config
from security import issue_token
from store import SubmissionStore


def _seed(db_session, tag, count):
    store = SubmissionStore(db_session)
    base = datetime.now(timezone.utc) - timedelta(hours=1)
    for i in range(count):
        store.insert({
            "name": f"Person {chr(65 + i)}",
            "gender": "other",
            "nationality": tag,
            "email": f"p{i}@{tag}.org",
            "phone": "+44 20 1234 5678",
            "address": "2 Lane",
            "message": f"Message number {i} for {tag}",
            "ip_address": "10.0.0.1",
            "user_agent": "seed",
            "created_at": base + timedelta(minutes=i),
        })

def test_login_returns_token(client):
    r = client.post("/admin/session", json={"username": "Admin", "password": "Admin@123"})
    assert r.status_code == 200, r.text
    token = r.json()["token"]
    assert client.get("/submissions", headers={"Authorization": f"Bearer {token}"}).status_code == 200

def test_login_rejects_wrong_credentials(client):
    for creds in ({"username": "Admin", "password": "nope"},
                  {"username": "admin", "password": "Admin@123"},
                  {}):
        r = client.post("/admin/session", json=creds)
        assert r.status_code == 401
        assert r.json() == {"message": "Invalid credentials"}

def test_listing_requires_token(client):
    assert client.get("/submissions").status_code == 401
    assert client.get("/submissions", headers={"Authorization": "Bearer garbage"}).status_code == 401
    assert client.get("/submissions", headers={"Authorization": "Basic abc"}).status_code == 401

def test_listing_rejects_expired_token(client):
    stale = issue_token(now=datetime.now(timezone.utc) - timedelta(days=2))
    r = client.get("/submissions", headers={"Authorization": f"Bearer {stale}"})
    assert r.status_code == 401
    assert r.json()["message"] == "Token has expired"

def test_listing_newest_first(client, admin_headers, db_session):
    tag = uuid.uuid4().hex[:8]
    _seed(db_session, tag, 3)
    r = client.get("/submissions", params={"search": tag}, headers=admin_headers)
    assert r.status_code == 200
    rows = r.json()
    assert [row["email"] for row in rows] == [f"p2@{tag}.org", f"p1@{tag}.org", f"p0@{tag}.org"]
    assert r.headers["X-Total-Count"] == "3"
    assert rows[0]["ipAddress"] == "10.0.0.1"
    assert "honeypot" not in rows[0] and "recaptchaToken" not in rows[0]

def test_listing_pagination(client, admin_headers, db_session):
    tag = uuid.uuid4().hex[:8]
    _seed(db_session, tag, 5)
    r = client.get("/submissions", params={"search": tag, "skip": 1, "limit": 2}, headers=admin_headers)
    emails = [row["email"] for row in r.json()]
    assert emails == [f"p3@{tag}.org", f"p2@{tag}.org"]
    assert r.headers["X-Total-Count"] == "5"

def test_submitted_record_round_trips_to_listing(client, admin_headers, make_payload):
    body = make_payload()
    assert client.post("/submissions", json=body).status_code == 201
    rows = client.get("/submissions", params={"search": body["email"]}, headers=admin_headers).json()
    assert len(rows) == 1
    for field in ("name", "gender", "nationality", "email", "phone", "address", "message"):
        assert rows[0][field] == body[field]

def test_token_signed_with_other_secret_rejected(client, monkeypatch):
    original = config.JWT_SECRET
    monkeypatch.setattr(config, "JWT_SECRET", original + "-other")
    foreign = issue_token()
    monkeypatch.setattr(config, "JWT_SECRET", original)
    r = client.get("/submissions", headers={"Authorization": f"Bearer {foreign}"})
    assert r.status_code == 401

def test_search_treats_wildcards_literally(client, admin_headers, db_session):
    tag = uuid.uuid4().hex[:8]
    _seed(db_session, tag, 3)
    SubmissionStore(db_session).insert({
        "name": "Lane Owner", "gender": "other", "nationality": "X",
        "email": f"owner@{uuid.uuid4().hex[:8]}.org", "phone": "+44 20 1234 5678",
        "address": f"{tag}_lane 100%", "message": "Plain message here",
    })
    r = client.get("/submissions", params={"search": f"{tag}_"}, headers=admin_headers)
    assert r.headers["X-Total-Count"] == "1"
    assert r.json()[0]["address"] == f"{tag}_lane 100%"

    r = client.get("/submissions", params={"search": f"{tag}%"}, headers=admin_headers)
    assert r.json() == []
