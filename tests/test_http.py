"""End-to-end tests through the JSON blueprints."""
from sqlalchemy import select

from app.menfem import store as crud
from app.menfem.models import Article, Category, User
from app.menfem.modules.membership import service as membership


def _sign_up(client, email="editor@example.com"):
    r = client.post("/auth/sign-up", json={"email": email, "password": "password123"})
    assert r.status_code == 201
    return r.json["user"]


def _sign_up_admin(client, store, email="editor@example.com"):
    user = _sign_up(client, email)
    with store.session_scope() as s:
        crud.update(s, s.get(User, user["id"]), email_verified=True)
    return user


def _category(store, slug="style"):
    with store.session_scope() as s:
        c = Category(name=slug.title(), slug=slug)
        s.add(c)
        s.flush()
        return c.id


def test_admin_requires_sign_in(client):
    assert client.get("/admin").status_code == 401
    assert client.post("/admin/articles", json={}).status_code == 401


def test_article_lifecycle(client, store):
    _sign_up_admin(client, store)
    category_id = _category(store)

    r = client.post(
        "/admin/articles",
        json={"title": "Ten Shirts", "content": "A guide to shirts.", "category_id": category_id},
    )
    assert r.status_code == 201
    article = r.json["article"]
    assert article["slug"] == "ten-shirts"
    assert article["url"] == "/articles/ten-shirts"
    assert article["published_at"] is None

    # Drafts are hidden from readers
    assert client.get("/articles/ten-shirts").status_code == 404

    r = client.post(f"/admin/articles/{article['id']}/publish")
    assert r.status_code == 200
    assert r.json["article"]["published_at"] is not None

    r = client.get("/articles")
    assert [a["slug"] for a in r.json["items"]] == ["ten-shirts"]

    r = client.get("/articles/ten-shirts")
    assert r.status_code == 200
    assert r.json["article"]["content"] == "A guide to shirts."
    assert r.json["article"]["view_count"] == 1
    assert r.json["article"]["saved"] is False

    r = client.patch(f"/admin/articles/{article['id']}", json={"slug": "shirts"})
    assert r.status_code == 400
    assert r.json["field"] == "slug"


def test_premium_article_locked_without_membership(client, store):
    user = _sign_up_admin(client, store)
    category_id = _category(store)
    client.post(
        "/admin/articles",
        json={
            "title": "Members Only",
            "content": "Secret tailoring tips.",
            "category_id": category_id,
            "is_premium": True,
            "is_published": True,
        },
    )

    r = client.get("/articles/members-only")
    assert r.json["article"]["locked"] is True
    assert "content" not in r.json["article"]

    with store.session_scope() as s:
        membership.apply_billing_update(s, s.get(User, user["id"]), status="ACTIVE")

    r = client.get("/articles/members-only")
    assert r.json["article"]["locked"] is False
    assert r.json["article"]["content"] == "Secret tailoring tips."


def test_save_and_comment(client, store):
    _sign_up_admin(client, store)
    category_id = _category(store)
    client.post(
        "/admin/articles",
        json={"title": "Boots", "content": "Leather care.", "category_id": category_id, "is_published": True},
    )

    assert client.post("/articles/boots/save").json["saved"] is True
    assert client.get("/articles/boots").json["article"]["saved"] is True
    assert [a["slug"] for a in client.get("/dashboard").json["saved_articles"]] == ["boots"]

    r = client.post("/articles/boots/comments", json={"content": "Great tips"})
    assert r.status_code == 201
    r = client.get("/articles/boots/comments")
    assert [c["content"] for c in r.json["items"]] == ["Great tips"]

    r = client.delete("/articles/boots/save")
    assert r.json["removed"] is True


def test_category_delete_conflict(client, store):
    _sign_up_admin(client, store)
    category_id = _category(store)
    client.post("/admin/articles", json={"title": "Ties", "content": "Knots.", "category_id": category_id})

    r = client.delete(f"/admin/categories/{category_id}")
    assert r.status_code == 409
    assert r.json["error"] == "foreign_key_violation"


def test_event_rsvp_flow(client, store):
    _sign_up_admin(client, store)
    r = client.post(
        "/admin/events",
        json={
            "title": "Barber Night",
            "description": "Hot towel shaves.",
            "location": "Soho",
            "start_at": "2099-05-01T18:00:00Z",
            "end_at": "2099-05-01T21:00:00Z",
            "capacity": 1,
            "is_published": True,
        },
    )
    assert r.status_code == 201
    event_id = r.json["event"]["id"]

    r = client.post(f"/events/{event_id}/rsvp")
    assert r.json["rsvp"]["status"] == "CONFIRMED"

    client.post("/auth/sign-out")
    _sign_up(client, "second@example.com")
    r = client.post(f"/events/{event_id}/rsvp")
    assert r.json["rsvp"]["status"] == "WAITLISTED"

    r = client.get(f"/events/{event_id}")
    assert r.json["event"]["attendance"]["CONFIRMED"] == 1
    assert r.json["event"]["my_rsvp"]["status"] == "WAITLISTED"

    r = client.get("/events")
    assert [e["id"] for e in r.json["items"]] == [event_id]


def test_newsletter_endpoints(client):
    r = client.post("/newsletter/subscribe", json={"email": "fan@example.com"})
    assert r.status_code == 200
    assert r.json["subscription"]["is_active"] is True

    r = client.post("/newsletter/unsubscribe", json={"email": "fan@example.com"})
    assert r.json["subscription"]["is_active"] is False

    r = client.post("/newsletter/confirm", json={"token": "missing"})
    assert r.status_code == 404


def test_profile_delete_blocked_while_authoring(client, store):
    _sign_up_admin(client, store)
    category_id = _category(store)
    client.post("/admin/articles", json={"title": "Mine", "content": "x", "category_id": category_id})

    r = client.delete("/profile")
    assert r.status_code == 409
    # Still signed in and still present
    assert client.get("/profile").status_code == 200


def test_membership_admin(client, store):
    user = _sign_up_admin(client, store)
    r = client.put(
        f"/admin/users/{user['id']}/membership",
        json={"status": "PAST_DUE", "external_customer_id": "cus_9", "current_period_end": "2099-01-01T00:00:00Z"},
    )
    assert r.status_code == 200
    assert r.json["membership"]["status"] == "PAST_DUE"
    assert client.get("/profile").json["premium_access"] is True

    r = client.put(f"/admin/users/{user['id']}/membership", json={"status": "BOGUS"})
    assert r.status_code == 400

    r = client.delete(f"/admin/users/{user['id']}/membership")
    assert r.json["membership"]["status"] == "CANCELLED"


def test_member_cannot_grant_own_membership(client, store):
    category_id = _category(store)
    admin = _sign_up_admin(client, store)
    client.post(
        "/admin/articles",
        json={"title": "Members Only", "content": "Secret.", "category_id": category_id, "is_premium": True, "is_published": True},
    )
    client.post("/auth/sign-out")

    reader = _sign_up(client, "reader@example.com")
    r = client.put(f"/admin/users/{reader['id']}/membership", json={"status": "ACTIVE"})
    assert r.status_code == 403
    assert r.json["error"] == "forbidden"
    assert client.get("/articles/members-only").json["article"]["locked"] is True
    assert client.get("/profile").json["premium_access"] is False

    with store.session_scope() as s:
        article_id = s.scalars(select(Article.id)).one()
    assert client.delete(f"/admin/articles/{article_id}").status_code == 403
    assert client.delete(f"/admin/categories/{category_id}").status_code == 403
    assert client.delete(f"/admin/users/{admin['id']}").status_code == 403
    assert client.get("/admin").status_code == 403
    with store.session_scope() as s:
        assert s.get(Article, article_id) is not None
        assert s.get(User, admin["id"]) is not None


def test_unverified_allow_listed_email_is_not_admin(client):
    _sign_up(client)
    assert client.get("/admin").status_code == 403
    assert client.post("/admin/articles", json={}).status_code == 403


def test_form_false_flags_stay_false(client, store):
    _sign_up_admin(client, store)
    category_id = _category(store)
    r = client.post(
        "/admin/articles",
        data={
            "title": "Form Post",
            "content": "Posted from a form.",
            "category_id": category_id,
            "is_published": "false",
            "is_premium": "no",
        },
    )
    assert r.status_code == 201
    assert r.json["article"]["is_published"] is False
    assert r.json["article"]["is_premium"] is False
    assert r.json["article"]["published_at"] is None

    r = client.post(
        "/admin/articles",
        data={"title": "Bad Flag", "content": "x", "category_id": category_id, "is_published": "maybe"},
    )
    assert r.status_code == 400
    assert r.json["field"] == "is_published"
