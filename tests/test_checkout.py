import stripe

from conftest import auth_headers, make_team, make_user
from trackroster.models.team import Team, TeamMember, TeamRole
from trackroster.services.checkout import slugify

NEW_TEAM = {
    "teamName": "Eagles",
    "schoolName": "Central High",
    "slug": "eagles",
}


def test_slugify():
    assert slugify("My  Eagles!") == "my-eagles"
    assert slugify("--North -- Stars--") == "north-stars"
    assert slugify("Ünï 2026") == "n-2026"
    assert slugify("") == ""


def test_new_team_checkout_creates_nothing(client, db, stripe_sessions):
    user = make_user(db)
    r = client.post(
        "/billing/build-checkout",
        json={**NEW_TEAM, "trial": True},
        headers={**auth_headers(user), "Origin": "https://app.trackroster.test"},
    )
    assert r.status_code == 200
    assert r.json()["url"] == "https://checkout.stripe.com/c/pay/cs_test_1"
    assert db.query(Team).count() == 0

    params = stripe_sessions[0]
    assert params["mode"] == "subscription"
    assert params["line_items"] == [{"price": "price_test_123", "quantity": 1}]
    assert params["customer_email"] == "coach@x.com"
    assert params["metadata"] == {
        "mode": "new_tenant",
        "user_id": str(user.id),
        "trial": "true",
        "team_name": "Eagles",
        "school_name": "Central High",
        "slug": "eagles",
        "primary_color": "#1e3a5f",
        "secondary_color": "#c5a900",
        "logo_url": "",
    }
    assert params["subscription_data"]["trial_period_days"] == 14
    assert params["success_url"] == (
        "https://app.trackroster.test/onboarding?payment=success&session_id={CHECKOUT_SESSION_ID}"
    )
    assert params["cancel_url"] == "https://app.trackroster.test/onboarding?payment=cancelled"


def test_slug_is_normalized_and_colors_kept(client, db, stripe_sessions):
    user = make_user(db)
    r = client.post(
        "/billing/build-checkout",
        json={**NEW_TEAM, "slug": "Central Eagles!", "primaryColor": "#000000", "secondaryColor": "#ffffff"},
        headers=auth_headers(user),
    )
    assert r.status_code == 200
    meta = stripe_sessions[0]["metadata"]
    assert meta["slug"] == "central-eagles"
    assert meta["primary_color"] == "#000000"
    assert meta["secondary_color"] == "#ffffff"
    assert meta["trial"] == "false"
    assert "trial_period_days" not in stripe_sessions[0]["subscription_data"]
    assert stripe_sessions[0]["success_url"].startswith("http://localhost:5173/onboarding")


def test_taken_slug_never_reaches_stripe(client, db, stripe_sessions):
    make_team(db, slug="eagles")
    user = make_user(db)
    r = client.post("/billing/build-checkout", json=NEW_TEAM, headers=auth_headers(user))
    assert r.status_code == 400
    assert r.json()["code"] == "slug_taken"
    assert r.json()["error"] == 'The slug "eagles" is already taken. Please choose a different one.'
    assert stripe_sessions == []


def test_new_team_requires_fields(client, db, stripe_sessions):
    user = make_user(db)
    r = client.post("/billing/build-checkout", json={"teamName": "Eagles"}, headers=auth_headers(user))
    assert r.status_code == 400
    assert r.json()["error"] == "Team name, school name, and slug are required"
    assert stripe_sessions == []


def test_existing_team_checkout_for_coach(client, db, stripe_sessions):
    coach = make_user(db)
    team = make_team(db, slug="eagles", owner=coach)
    r = client.post(
        "/billing/build-checkout",
        json={"teamId": team.id, "trial": True},
        headers={**auth_headers(coach), "Origin": "https://app.trackroster.test/"},
    )
    assert r.status_code == 200

    params = stripe_sessions[0]
    assert params["client_reference_id"] == str(team.id)
    assert params["metadata"]["mode"] == "existing_tenant"
    assert params["metadata"]["team_id"] == str(team.id)
    assert params["subscription_data"] == {
        "metadata": {"mode": "existing_tenant", "team_id": str(team.id)},
        "trial_period_days": 14,
    }
    assert params["success_url"] == "https://app.trackroster.test/t/eagles?payment=success"
    assert params["cancel_url"] == "https://app.trackroster.test/t/eagles?payment=cancelled"


def test_existing_team_requires_coach_role(client, db, stripe_sessions):
    coach = make_user(db)
    team = make_team(db, owner=coach)
    athlete = make_user(db, email="runner@x.com")
    other = make_user(db, email="other@x.com")

    db.add(TeamMember(team_id=team.id, user_id=athlete.id, role=TeamRole.athlete))
    db.commit()

    for user in (athlete, other):
        r = client.post("/billing/build-checkout", json={"teamId": team.id}, headers=auth_headers(user))
        assert r.status_code == 403
        assert r.json()["error"] == "Not authorized for this team"
    assert stripe_sessions == []


def test_checkout_requires_auth(client, stripe_sessions):
    r = client.post("/billing/build-checkout", json=NEW_TEAM)
    assert r.status_code == 401

    r = client.post("/billing/build-checkout", json=NEW_TEAM, headers={"Authorization": "Bearer nope"})
    assert r.status_code == 401
    assert stripe_sessions == []


def test_unconfirmed_user_cannot_checkout(client, db, stripe_sessions):
    user = make_user(db, verified=False)
    r = client.post("/billing/build-checkout", json=NEW_TEAM, headers=auth_headers(user))
    assert r.status_code == 401
    assert stripe_sessions == []


def test_stripe_failure_is_upstream_error(client, db, monkeypatch):
    def fail(**params):
        raise stripe.StripeError("card network down")

    monkeypatch.setattr(stripe.checkout.Session, "create", fail)
    user = make_user(db)
    r = client.post("/billing/build-checkout", json=NEW_TEAM, headers=auth_headers(user))
    assert r.status_code == 500
    assert r.json()["code"] == "upstream_error"
    assert "card network down" in r.json()["error"]


def test_logo_url_longer_than_stripe_metadata_limit_is_rejected(client, db, stripe_sessions):
    user = make_user(db)
    logo = "https://cdn.example.com/" + "a" * 480
    r = client.post("/billing/build-checkout", json={**NEW_TEAM, "logoUrl": logo}, headers=auth_headers(user))
    assert r.status_code == 400
    assert r.json()["code"] == "validation_error"
    assert stripe_sessions == []

    r = client.post("/billing/build-checkout", json={**NEW_TEAM, "logoUrl": logo[:500]}, headers=auth_headers(user))
    assert r.status_code == 200
    assert stripe_sessions[0]["metadata"]["logo_url"] == logo[:500]
