import logging
from uuid import uuid4

import pytest

from textly.infra import jwt as jwt_helper
from textly.infra.request import hash_ip
from textly.settings import settings


async def seed_pair(datastore):
    caller, partner = str(uuid4()), str(uuid4())
    await datastore.rooms.insert(caller, participant_2=partner)
    await datastore.profiles.save_auth_user(caller, email="caller@example.com", user_metadata={"name": "Caller"})
    await datastore.profiles.save_auth_user(
        partner,
        email="partner.one@example.com",
        user_metadata={"avatar_url": "null", "avatar": "https://img.example.com/p.png"},
    )
    return caller, partner


@pytest.mark.asyncio
async def test_users_meta_returns_authorized_subset(api_client, datastore, caplog):
    caller, partner = await seed_pair(datastore)
    stranger = str(uuid4())
    await datastore.profiles.save_auth_user(stranger, email="stranger@example.com")
    caplog.set_level(logging.WARNING, logger="textly.security")

    response = await api_client.post(
        "/api/users/meta",
        json={"ids": [caller, partner, stranger]},
        headers={"X-User-Id": caller, "X-Forwarded-For": "198.51.100.23, 10.0.0.1"},
    )

    assert response.status_code == 200
    users = {user["id"]: user for user in response.json()["users"]}
    assert set(users) == {caller, partner}
    assert users[caller]["nombre"] == "Caller"
    assert users[partner]["nombre"] == "partner.one"
    assert users[partner]["avatarUrl"] == "https://img.example.com/p.png"
    assert stranger not in users

    events = [record for record in caplog.records if getattr(record, "event", None) == "meta_unauthorized_ids"]
    assert len(events) == 1
    record = events[0]
    assert record.rejected == 1
    assert record.ip_hash == hash_ip("198.51.100.23")
    assert record.route == "/api/users/meta"
    assert record.request_id
    assert not any("198.51.100.23" in str(value) for value in record.__dict__.values())


@pytest.mark.asyncio
async def test_users_meta_fallback_name(api_client, datastore):
    caller = str(uuid4())
    await datastore.profiles.save_auth_user(caller, email=None, user_metadata={})
    response = await api_client.post("/api/users/meta", json={"ids": [caller]}, headers={"X-User-Id": caller})
    assert response.json()["users"][0]["nombre"] == "Usuario"
    assert response.json()["users"][0]["avatarUrl"] is None


@pytest.mark.asyncio
async def test_users_meta_requires_authentication(api_client, caplog):
    caplog.set_level(logging.WARNING, logger="textly.security")
    response = await api_client.post("/api/users/meta", json={"ids": [str(uuid4())]})
    assert response.status_code == 401
    body = response.json()
    assert body["error"] == "unauthorized"
    assert body["request_id"] == response.headers["X-Request-Id"]
    assert any(getattr(record, "event", None) == "auth_fail" for record in caplog.records)


@pytest.mark.asyncio
async def test_users_meta_rejects_dev_header_outside_dev(api_client, monkeypatch):
    monkeypatch.setattr(settings, "environment", "staging")
    response = await api_client.post(
        "/api/users/meta",
        json={"ids": [str(uuid4())]},
        headers={"X-User-Id": str(uuid4())},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_users_meta_accepts_bearer_token(api_client, datastore, monkeypatch):
    monkeypatch.setattr(settings, "environment", "staging")
    caller, partner = await seed_pair(datastore)
    token = jwt_helper.encode_access({"sub": caller})
    response = await api_client.post(
        "/api/users/meta",
        json={"ids": [partner]},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert response.status_code == 200
    assert [user["id"] for user in response.json()["users"]] == [partner]

    bad = await api_client.post(
        "/api/users/meta",
        json={"ids": [partner]},
        headers={"Authorization": "Bearer not-a-token"},
    )
    assert bad.status_code == 401


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"ids": []},
        {"ids": ["not-a-uuid"]},
        {"ids": [str(uuid4()) for _ in range(51)]},
        ["just", "a", "list"],
    ],
)
async def test_users_meta_validation(api_client, payload):
    response = await api_client.post("/api/users/meta", json=payload, headers={"X-User-Id": str(uuid4())})
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_payload"


@pytest.mark.asyncio
async def test_users_meta_authenticates_before_validating(api_client):
    response = await api_client.post("/api/users/meta", content=b"{broken")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_users_meta_rate_limited_before_validation(api_client, monkeypatch, caplog):
    monkeypatch.setattr(settings, "rate_limit_meta_max", 1)
    caplog.set_level(logging.WARNING, logger="textly.security")
    caller = str(uuid4())
    headers = {"X-User-Id": caller}

    first = await api_client.post("/api/users/meta", json={"ids": [caller]}, headers=headers)
    second = await api_client.post("/api/users/meta", content=b"{broken", headers=headers)

    assert first.status_code == 200
    assert second.status_code == 429
    assert int(second.headers["Retry-After"]) > 0
    assert any(getattr(record, "event", None) == "rate_limited" for record in caplog.records)


@pytest.mark.asyncio
async def test_users_meta_limiter_missing_in_production(api_client, monkeypatch, caplog):
    monkeypatch.setattr(settings, "environment", "production")
    monkeypatch.setattr(settings, "rate_limit_enabled", False)
    caplog.set_level(logging.WARNING, logger="textly.security")
    caller = str(uuid4())
    token = jwt_helper.encode_access({"sub": caller})

    response = await api_client.post(
        "/api/users/meta",
        json={"ids": [caller]},
        headers={"Authorization": f"Bearer {token}"},
    )

    assert response.status_code == 500
    assert response.json()["error"] == "internal_error"
    assert any(getattr(record, "event", None) == "config_error" for record in caplog.records)
