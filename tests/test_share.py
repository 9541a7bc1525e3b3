"""Share link creation and tracking endpoint tests."""

import datetime

import pytest
from httpx import AsyncClient


async def _recent(client: AsyncClient, admin_headers: dict[str, str]) -> list[dict]:
    response = await client.get("/admin/shares/recent", headers=admin_headers)
    assert response.status_code == 200
    return response.json()["data"]


@pytest.mark.asyncio
async def test_create_share_link(client: AsyncClient, user_headers: dict[str, str]) -> None:
    response = await client.post("/share", json={"url": "https://example.com/x"}, headers=user_headers)
    assert response.status_code == 201
    data = response.json()
    assert data["ok"] is True
    assert len(data["shortId"]) == 8
    assert data["shortUrl"] == f"http://test/s/{data['shortId']}"
    assert isinstance(data["id"], int)


@pytest.mark.asyncio
async def test_create_share_link_records_fields(
    client: AsyncClient, user_headers: dict[str, str], admin_headers: dict[str, str]
) -> None:
    payload = {"url": "https://nexora.app/apps/abc", "appId": "app-42", "meta": {"source": "card", "tags": ["a"]}}
    response = await client.post("/share", json=payload, headers=user_headers)
    assert response.status_code == 201

    [link] = await _recent(client, admin_headers)
    assert link["originalUrl"] == "https://nexora.app/apps/abc"
    assert link["appId"] == "app-42"
    assert link["createdBy"] == "user-1"
    assert link["meta"] == {"source": "card", "tags": ["a"]}
    assert link["analytics"] == {"clicks": 0, "byReferrer": {}, "byPlatform": {}, "lastClickAt": None}


@pytest.mark.asyncio
async def test_create_share_link_defaults_to_thirty_day_expiry(
    client: AsyncClient, user_headers: dict[str, str], admin_headers: dict[str, str]
) -> None:
    await client.post("/share", json={"url": "https://example.com"}, headers=user_headers)

    [link] = await _recent(client, admin_headers)
    expires_at = datetime.datetime.fromisoformat(link["expiresAt"])
    remaining = expires_at - datetime.datetime.now(datetime.UTC)
    assert datetime.timedelta(days=29, hours=23) < remaining <= datetime.timedelta(days=30)


@pytest.mark.asyncio
@pytest.mark.parametrize("expires_in_days", [0, None])
async def test_create_share_link_zero_or_null_expiry_never_expires(
    client: AsyncClient, user_headers: dict[str, str], admin_headers: dict[str, str], expires_in_days
) -> None:
    response = await client.post(
        "/share",
        json={"url": "https://nexora.app/apps/abc", "expiresInDays": expires_in_days},
        headers=user_headers,
    )
    assert response.status_code == 201

    [link] = await _recent(client, admin_headers)
    assert link["expiresAt"] is None


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{}, {"url": ""}, {"url": "   "}, {"url": None}])
async def test_create_share_link_requires_url(
    client: AsyncClient, user_headers: dict[str, str], payload: dict
) -> None:
    response = await client.post("/share", json=payload, headers=user_headers)
    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": "url required"}


@pytest.mark.asyncio
@pytest.mark.parametrize("url", ["not-a-url", "ftp://example.com/file", "javascript:alert(1)", "//example.com"])
async def test_create_share_link_rejects_non_http_urls(
    client: AsyncClient, user_headers: dict[str, str], url: str
) -> None:
    response = await client.post("/share", json={"url": url}, headers=user_headers)
    assert response.status_code == 400
    assert response.json()["ok"] is False


@pytest.mark.asyncio
async def test_create_share_link_requires_token(client: AsyncClient) -> None:
    response = await client.post("/share", json={"url": "https://example.com"})
    assert response.status_code == 401
    assert response.json() == {"ok": False, "error": "Missing token"}


@pytest.mark.asyncio
async def test_create_share_link_rejects_bad_token(client: AsyncClient) -> None:
    response = await client.post(
        "/share", json={"url": "https://example.com"}, headers={"Authorization": "Bearer not.a.jwt"}
    )
    assert response.status_code == 401
    assert response.json()["error"] == "Invalid token"


@pytest.mark.asyncio
async def test_created_identifiers_are_unique(client: AsyncClient, user_headers: dict[str, str]) -> None:
    short_ids = set()
    for i in range(25):
        response = await client.post("/share", json={"url": f"https://example.com/{i}"}, headers=user_headers)
        assert response.status_code == 201
        short_ids.add(response.json()["shortId"])
    assert len(short_ids) == 25


@pytest.mark.asyncio
async def test_created_link_is_cached(client: AsyncClient, user_headers: dict[str, str], mock_redis) -> None:
    response = await client.post("/share", json={"url": "https://example.com"}, headers=user_headers)
    short_id = response.json()["shortId"]

    mock_redis.setex.assert_awaited_once()
    key, _ttl, _payload = mock_redis.setex.await_args.args
    assert key == f"share:{short_id}"


@pytest.mark.asyncio
async def test_track_share(client: AsyncClient, user_headers: dict[str, str], mock_redis) -> None:
    response = await client.post("/share/track", json={"appId": "app-1", "kind": "copy"}, headers=user_headers)
    assert response.status_code == 200
    assert response.json() == {"ok": True}
    # The injected producer reports no broker: the event lands on the Redis stream.
    mock_redis.xadd.assert_awaited_once()


@pytest.mark.asyncio
async def test_track_share_requires_token(client: AsyncClient) -> None:
    response = await client.post("/share/track", json={"appId": "app-1", "kind": "copy"})
    assert response.status_code == 401


@pytest.mark.asyncio
@pytest.mark.parametrize("expires_in_days", ["NaN", "Infinity", "-Infinity", "1e12"])
async def test_create_share_link_rejects_out_of_range_expiry(
    client: AsyncClient, user_headers: dict[str, str], expires_in_days: str
) -> None:
    # Raw body: the JSON encoder on the client side refuses non-finite floats.
    body = f'{{"url": "https://example.com/x", "expiresInDays": {expires_in_days}}}'
    response = await client.post(
        "/share", content=body, headers={**user_headers, "Content-Type": "application/json"}
    )
    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": "expiresInDays is out of range"}


@pytest.mark.asyncio
async def test_track_share_uses_kafka_when_available(
    client: AsyncClient, user_headers: dict[str, str], mock_redis, mock_events
) -> None:
    mock_events.publish_track.return_value = True

    response = await client.post("/share/track", json={"appId": "app-1", "kind": "copy"}, headers=user_headers)
    assert response.json() == {"ok": True}
    event = mock_events.publish_track.await_args.args[0]
    assert (event.user_id, event.app_id, event.kind) == ("user-1", "app-1", "copy")
    mock_redis.xadd.assert_not_awaited()
