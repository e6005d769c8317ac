from datetime import datetime, timedelta, timezone

from conftest import make_user
from trackroster.models.verification_code import VerificationCode
from trackroster.services import code_store
from trackroster.services.auth import decode_token_with_error, sign_in_with_password


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}
    assert client.get("/").json()["status"] == "ok"


def test_options_always_ok(client):
    for path in ("/auth/issue-verification", "/auth/redeem-verification", "/billing/build-checkout", "/anything"):
        r = client.options(path)
        assert r.status_code == 200
        assert r.text == "ok"


def test_wrong_method_is_405(client):
    assert client.get("/auth/issue-verification").status_code == 405
    assert client.get("/billing/build-checkout").status_code == 405


def test_me_requires_token(client, db):
    assert client.get("/auth/me").status_code == 401
    r = client.get("/auth/me", headers={"Authorization": "Bearer garbage"})
    assert r.status_code == 401
    assert r.json()["code"] == "unauthorized"


def test_upsert_resets_attempts(db):
    expires = datetime(2026, 1, 1, 12, 10, tzinfo=timezone.utc)
    code_store.upsert_challenge(db, "u@x.com", "123456", expires)
    code_store.consume_attempt(db, "u@x.com", 5)
    code_store.consume_attempt(db, "u@x.com", 5)

    code_store.upsert_challenge(db, "u@x.com", "654321", expires + timedelta(minutes=5))
    db.expire_all()
    rows = db.query(VerificationCode).all()
    assert len(rows) == 1
    assert rows[0].code == "654321"
    assert rows[0].attempts == 0
    assert code_store.as_utc(rows[0].expires_at) == expires + timedelta(minutes=5)


def test_consume_attempt_stops_at_limit(db):
    expires = datetime(2026, 1, 1, 12, 10, tzinfo=timezone.utc)
    code_store.upsert_challenge(db, "lim@x.com", "123456", expires)

    counts = [code_store.consume_attempt(db, "lim@x.com", 3) for _ in range(4)]
    assert [row.attempts for row in counts[:3]] == [1, 2, 3]
    assert counts[3] is None
    assert counts[0].code == "123456"
    assert code_store.consume_attempt(db, "missing@x.com", 3) is None


def test_as_utc_keeps_aware_values():
    aware = datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert code_store.as_utc(aware) is aware
    assert code_store.as_utc(datetime(2026, 1, 1)) == aware


def test_session_token_round_trip(db):
    user = make_user(db, email="tok@x.com", password="pw-abc")
    session = sign_in_with_password(db, "TOK@x.com", "pw-abc")
    payload, err = decode_token_with_error(session["access_token"])
    assert err is None
    assert payload["sub"] == str(user.id)
    assert session["expires_in"] == 3600

    assert sign_in_with_password(db, "tok@x.com", "wrong") is None
    make_user(db, email="pending@x.com", password="pw", verified=False)
    assert sign_in_with_password(db, "pending@x.com", "pw") is None
