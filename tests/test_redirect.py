"""Redirect endpoint behavior tests."""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_redirect_valid_alias(client: AsyncClient) -> None:
    # Create a short URL first
    create_resp = await client.post("/url", json={"url": "https://www.google.com"})
    alias = create_resp.json()["alias"]

    # httpx won't follow redirects unless asked to
    response = await client.get(f"/{alias}", follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"] == "https://www.google.com"


@pytest.mark.asyncio
async def test_redirect_unknown_alias(client: AsyncClient) -> None:
    response = await client.get("/nonexistent", follow_redirects=False)
    assert response.status_code == 404
    assert response.json() == {"detail": "alias not found"}


@pytest.mark.asyncio
async def test_redirect_malformed_alias_is_not_found(client: AsyncClient) -> None:
    response = await client.get("/bad%20alias!", follow_redirects=False)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_redirect_with_custom_alias(client: AsyncClient) -> None:
    await client.post("/url", json={"url": "https://www.github.com", "alias": "ghub"})
    response = await client.get("/ghub", follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"] == "https://www.github.com"


@pytest.mark.asyncio
async def test_redirect_needs_no_credentials(client: AsyncClient) -> None:
    await client.post("/url", json={"url": "https://www.python.org", "alias": "py"})

    response = await client.get("/py", follow_redirects=False, auth=None)
    assert response.status_code == 302


@pytest.mark.asyncio
async def test_redirect_is_repeatable(client: AsyncClient) -> None:
    await client.post("/url", json={"url": "https://www.python.org/doc/", "alias": "pydoc"})

    for _ in range(3):
        response = await client.get("/pydoc", follow_redirects=False)
        assert response.status_code == 302
        assert response.headers["location"] == "https://www.python.org/doc/"
