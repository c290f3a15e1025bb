"""Tests for the tab and window tracking endpoints."""
from httpx import AsyncClient


async def open_tabs(client: AsyncClient) -> None:
    for tab_id, url in [(1, "https://a.com"), (2, "https://b.com")]:
        response = await client.post("/tabs", json={"tab_id": tab_id, "window_id": 7, "url": url})
        assert response.status_code == 204


async def test__track_tab__listed_in_window(client: AsyncClient) -> None:
    await open_tabs(client)

    response = await client.get("/windows/7/tabs")

    assert response.status_code == 200
    assert response.json() == [
        {"tab_id": 1, "url": "https://a.com"},
        {"tab_id": 2, "url": "https://b.com"},
    ]


async def test__update_and_remove_tab(client: AsyncClient) -> None:
    await open_tabs(client)

    response = await client.patch("/tabs/1", json={"url": "https://a.com/next"})
    assert response.status_code == 204
    response = await client.delete("/tabs/2")
    assert response.status_code == 204

    response = await client.get("/windows/7/tabs")
    assert response.json() == [{"tab_id": 1, "url": "https://a.com/next"}]


async def test__remove_window__forgets_tabs(client: AsyncClient) -> None:
    await open_tabs(client)

    response = await client.delete("/windows/7")

    assert response.status_code == 204
    assert (await client.get("/windows/7/tabs")).json() == []


async def test__focused_window_tabs_added_to_list(client: AsyncClient) -> None:
    await open_tabs(client)
    assert (await client.post("/windows/7/focus")).status_code == 204
    list_id = (await client.post("/rpc/create_custom_list", json={"name": "Tabs"})).json()

    response = await client.post("/rpc/add_open_tabs_to_list", json={"list_id": list_id})
    assert response.status_code == 200

    response = await client.post("/rpc/remove_open_tabs_from_list", json={"list_id": list_id})
    assert response.status_code == 200
    assert [r["key"] for r in response.json()["entries"]["results"]] == [
        "1:https://a.com",
        "2:https://b.com",
    ]
    pages = (await client.post("/rpc/fetch_list_pages_by_id", json={"list_id": list_id})).json()
    assert pages == []
