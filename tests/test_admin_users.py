"""Tests for user management and the admin-account guards."""
import pytest

from shop.models import User
from web.api import user_routes


async def _user_by_email(fetch_all, email):
    return next((u for u in await fetch_all(User) if u.email == email), None)


@pytest.mark.asyncio
async def test_owner_cannot_create_admin(login_as, fetch_all):
    c, _ = await login_as("owner")
    r = await c.post("/admin/users", data={"email": "boss@example.com", "password": "pw", "role": "admin"})
    assert r.status_code == 403
    assert await _user_by_email(fetch_all, "boss@example.com") is None


@pytest.mark.asyncio
async def test_admin_can_create_admin(login_as, fetch_all):
    c, _ = await login_as("admin")
    r = await c.post("/admin/users", data={"email": "boss@example.com", "password": "pw", "role": "admin"})
    assert r.status_code == 303
    created = await _user_by_email(fetch_all, "boss@example.com")
    assert created.role == "admin"


@pytest.mark.asyncio
async def test_owner_creates_editor_without_password(login_as, client_factory, fetch_all):
    """No password given: a random one is set, so the account exists but nobody can guess it."""
    c, _ = await login_as("owner")
    r = await c.post("/admin/users", data={"name": "Ed", "email": "ed@example.com", "role": "editor"})
    assert r.status_code == 303
    created = await _user_by_email(fetch_all, "ed@example.com")
    assert (created.name, created.role) == ("Ed", "editor")

    other = await client_factory()
    r = await other.post("/login", data={"email": "ed@example.com", "password": ""})
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_subscriber_cannot_manage_users(login_as, make_user, fetch_all):
    target = await make_user("bob@example.com", "editor")
    c, _ = await login_as("subscriber")
    r = await c.post("/admin/users", data={"email": "x@example.com", "role": "subscriber"})
    assert r.status_code == 403
    r = await c.post(f"/admin/users/{target.id}/update", data={"role": "subscriber"})
    assert r.status_code == 403
    r = await c.post(f"/admin/users/{target.id}/delete")
    assert r.status_code == 403
    assert (await _user_by_email(fetch_all, "bob@example.com")).role == "editor"


@pytest.mark.asyncio
async def test_editor_cannot_manage_users(login_as):
    c, _ = await login_as("editor")
    r = await c.post("/admin/users", data={"email": "x@example.com", "role": "subscriber"})
    assert r.status_code == 403


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "data,message",
    [
        ({"email": "", "role": "editor"}, "email"),
        ({"email": "x@example.com", "role": "wizard"}, "role"),
        ({"email": "x@example.com"}, "role"),
    ],
)
async def test_create_user_validation(login_as, fetch_all, data, message):
    c, _ = await login_as("admin")
    r = await c.post("/admin/users", data=data)
    assert r.status_code == 400
    assert message in r.text
    assert len(await fetch_all(User)) == 1


@pytest.mark.asyncio
async def test_create_user_duplicate_email(login_as, make_user, fetch_all):
    await make_user("bob@example.com")
    c, _ = await login_as("admin")
    r = await c.post("/admin/users", data={"email": "Bob@Example.com", "role": "editor"})
    assert r.status_code == 400
    assert "Email already in use" in r.text
    assert len(await fetch_all(User)) == 2


@pytest.mark.asyncio
async def test_email_clash_at_commit_rerenders(login_as, make_user, fetch_all, monkeypatch):
    """The unique email constraint still answers 400 when the lookup misses a concurrent insert."""
    await make_user("alice@example.com")
    target = await make_user("bob@example.com", "editor")
    c, _ = await login_as("admin")

    async def _no_user(*args, **kwargs):
        return None

    monkeypatch.setattr(user_routes, "get_user_by_email", _no_user)
    r = await c.post("/admin/users", data={"email": "alice@example.com", "role": "editor"})
    assert r.status_code == 400
    assert "Email already in use" in r.text
    assert len(await fetch_all(User)) == 3

    r = await c.post(f"/admin/users/{target.id}/update", data={"email": "alice@example.com"})
    assert r.status_code == 400
    assert "Email already in use" in r.text
    assert await _user_by_email(fetch_all, "bob@example.com") is not None


@pytest.mark.asyncio
async def test_admin_self_demotion_denied(login_as, fetch_all):
    c, admin = await login_as("admin")
    r = await c.post(f"/admin/users/{admin.id}/update", data={"role": "owner"})
    assert r.status_code == 403
    assert (await _user_by_email(fetch_all, admin.email)).role == "admin"

    # Profile edits without a role change are still fine
    r = await c.post(f"/admin/users/{admin.id}/update", data={"name": "Root", "role": "admin"})
    assert r.status_code == 303
    assert (await _user_by_email(fetch_all, admin.email)).name == "Root"


@pytest.mark.asyncio
async def test_owner_cannot_promote_to_admin(login_as, make_user, fetch_all):
    target = await make_user("bob@example.com", "editor")
    c, _ = await login_as("owner")
    r = await c.post(f"/admin/users/{target.id}/update", data={"role": "admin"})
    assert r.status_code == 403
    assert (await _user_by_email(fetch_all, "bob@example.com")).role == "editor"


@pytest.mark.asyncio
async def test_owner_cannot_demote_admin(login_as, make_user, fetch_all):
    target = await make_user("root@example.com", "admin")
    c, _ = await login_as("owner")
    r = await c.post(f"/admin/users/{target.id}/update", data={"role": "subscriber"})
    assert r.status_code == 403
    assert (await _user_by_email(fetch_all, "root@example.com")).role == "admin"


@pytest.mark.asyncio
async def test_owner_updates_editor(login_as, make_user, fetch_all):
    target = await make_user("bob@example.com", "editor")
    c, _ = await login_as("owner")
    r = await c.post(
        f"/admin/users/{target.id}/update",
        data={"name": "Robert", "email": "robert@example.com", "role": "subscriber"},
    )
    assert r.status_code == 303
    updated = await _user_by_email(fetch_all, "robert@example.com")
    assert (updated.id, updated.name, updated.role) == (target.id, "Robert", "subscriber")


@pytest.mark.asyncio
async def test_update_email_collision(login_as, make_user, fetch_all):
    await make_user("alice@example.com")
    target = await make_user("bob@example.com", "editor")
    c, _ = await login_as("admin")
    r = await c.post(f"/admin/users/{target.id}/update", data={"email": "alice@example.com"})
    assert r.status_code == 400
    assert (await _user_by_email(fetch_all, "bob@example.com")) is not None


@pytest.mark.asyncio
async def test_update_missing_user_is_404(login_as):
    c, _ = await login_as("admin")
    r = await c.post("/admin/users/999/update", data={"role": "editor"})
    assert r.status_code == 404
    r = await c.post("/admin/users/999/delete")
    assert r.status_code == 404


@pytest.mark.asyncio
@pytest.mark.parametrize("role", ["admin", "owner"])
async def test_self_delete_denied(login_as, fetch_all, role):
    c, me = await login_as(role)
    r = await c.post(f"/admin/users/{me.id}/delete")
    assert r.status_code == 403
    assert await _user_by_email(fetch_all, me.email) is not None


@pytest.mark.asyncio
async def test_owner_cannot_delete_admin(login_as, make_user, fetch_all):
    target = await make_user("root@example.com", "admin")
    c, _ = await login_as("owner")
    r = await c.post(f"/admin/users/{target.id}/delete")
    assert r.status_code == 403
    assert await _user_by_email(fetch_all, "root@example.com") is not None


@pytest.mark.asyncio
async def test_admin_deletes_admin_and_its_sessions_end(login_as, client_factory, fetch_all):
    c, _ = await login_as("admin")
    victim_client, victim = await login_as("admin", email="other-admin@example.com")
    assert (await victim_client.get("/admin")).status_code == 200

    r = await c.post(f"/admin/users/{victim.id}/delete")
    assert r.status_code == 303
    assert await _user_by_email(fetch_all, victim.email) is None

    r = await victim_client.get("/admin")
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_owner_deletes_subscriber(login_as, make_user, fetch_all):
    target = await make_user("bob@example.com")
    c, _ = await login_as("owner")
    r = await c.post(f"/admin/users/{target.id}/delete")
    assert r.status_code == 303
    assert await _user_by_email(fetch_all, "bob@example.com") is None
