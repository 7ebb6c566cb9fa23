"""
Email-only accounts, presence and per-student pages
"""

from app.models.user import User

DANA = {"name": "Dana", "email": "Dana@Radiography.org", "country": "US", "state": "OH"}


def test_login_creates_account_once(client, db):
    response = client.post("/login", json=DANA)
    assert response.status_code == 200
    user = response.json()
    assert user["email"] == "dana@radiography.org"
    assert user["is_online"] is True

    response = client.post("/login", json={**DANA, "name": "Someone Else"})
    assert response.json()["id"] == user["id"]
    assert response.json()["name"] == "Dana"
    assert db.query(User).count() == 1


def test_inactive_user_cannot_log_in(client, db):
    client.post("/api/users", json=DANA)
    db.query(User).update({User.is_active: False})
    db.commit()

    response = client.post("/login", json=DANA)
    assert response.status_code == 403
    assert response.json()["detail"] == "Inactive user"


def test_logout_goes_offline_and_forgets_session(client, db):
    user_id = client.post("/login", json=DANA).json()["id"]
    assert client.get("/user/results").status_code == 200

    response = client.post("/logout")
    assert response.status_code == 204

    user = db.query(User).filter(User.id == user_id).one()
    assert user.is_online is False
    assert client.get("/user/results").status_code == 401


def test_create_user_and_count(client):
    assert client.get("/api/user-count").json() == {"count": 0}

    response = client.post("/api/users", json=DANA)
    assert response.status_code == 201

    response = client.post("/api/users", json=DANA)
    assert response.status_code == 409

    response = client.post("/api/users", json={"name": "Bad", "email": "not-an-email"})
    assert response.status_code == 422

    assert client.get("/api/user-count").json() == {"count": 1}


def test_test_center_requires_login(client, make_test):
    make_test(title="Older", questions=[(["A", "B"], "A")])
    make_test(title="Newer")

    response = client.get("/test-center")
    assert response.status_code == 401
    assert response.json()["detail"] == "Not logged in"

    client.post("/login", json=DANA)
    tests = client.get("/test-center").json()
    assert {t["title"]: t["question_count"] for t in tests} == {"Older": 1, "Newer": 0}


def test_user_results_lists_own_attempts(client, make_test):
    test, (question,) = make_test(questions=[(["Anode", "Cathode"], "B")])
    client.post("/login", json=DANA)

    client.get(f"/start-test/{test.id}", params={"index": 0})
    client.get(
        f"/start-test/{test.id}",
        params={"prevQid": question.id, "chosen": "B", "finish": 1},
    )

    body = client.get("/user/results").json()
    assert body["total"] == 1
    assert body["results"][0]["test_title"] == "Radiation Protection"
    assert body["results"][0]["score"] == 100


def test_rendering_refreshes_activity(client, db, make_test):
    test, _ = make_test(questions=[(["Anode", "Cathode"], "B")])
    user_id = client.post("/login", json=DANA).json()["id"]
    db.query(User).update({User.last_active: None})
    db.commit()

    client.get(f"/start-test/{test.id}", params={"index": 0})

    db.expire_all()
    assert db.query(User).filter(User.id == user_id).one().last_active is not None
