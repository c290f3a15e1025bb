"""Tests for the remote-call endpoint."""
from httpx import AsyncClient

from tests.conftest import FakeScraper

MISSING_LIST_ID = "00000000-0000-7000-8000-000000000000"


async def call(client: AsyncClient, operation: str, **args: object):
    return await client.post(f"/rpc/{operation}", json=args)


async def create_list(client: AsyncClient, name: str = "Research") -> str:
    response = await call(client, "create_custom_list", name=name)
    assert response.status_code == 200
    return response.json()


# =============================================================================
# Discovery and dispatch errors
# =============================================================================


async def test__list_operations__includes_every_service(client: AsyncClient) -> None:
    response = await client.get("/rpc")

    assert response.status_code == 200
    names = response.json()
    assert names == sorted(names)
    for name in ("create_custom_lists", "toggle_annot_bookmark", "add_open_tabs_to_list",
                 "index_page_from_tab", "fetch_list_name_suggestions"):
        assert name in names


async def test__call_operation__unknown_name_404(client: AsyncClient) -> None:
    response = await call(client, "drop_database")

    assert response.status_code == 404
    assert "drop_database" in response.json()["detail"]


async def test__call_operation__missing_argument_422(client: AsyncClient) -> None:
    response = await call(client, "create_custom_list")

    assert response.status_code == 422
    errors = response.json()["detail"]
    assert [(e["type"], e["loc"]) for e in errors] == [("missing_argument", ["name"])]
    assert "input" not in errors[0]


async def test__call_operation__unexpected_argument_422(client: AsyncClient) -> None:
    response = await call(client, "create_custom_list", name="A", colour="red")

    assert response.status_code == 422


async def test__call_operation__bad_uuid_422(client: AsyncClient) -> None:
    response = await call(client, "fetch_list_by_id", list_id="not-a-uuid")

    assert response.status_code == 422


async def test__call_operation__empty_body_uses_defaults(client: AsyncClient) -> None:
    response = await client.post("/rpc/fetch_all_lists")

    assert response.status_code == 200
    assert response.json() == []


# =============================================================================
# Lists
# =============================================================================


async def test__research_scenario_over_rpc(client: AsyncClient) -> None:
    list_id = await create_list(client)

    response = await call(client, "insert_page_to_list", list_id=list_id, url="https://example.com/x")
    assert response.status_code == 200

    response = await call(client, "fetch_list_pages_by_id", list_id=list_id)
    assert response.status_code == 200
    entries = response.json()
    assert len(entries) == 1
    assert entries[0]["page_url"] == "example.com/x"
    assert entries[0]["full_url"] == "https://example.com/x"
    assert entries[0]["list_id"] == list_id


async def test__create_custom_list__duplicate_name_409(client: AsyncClient) -> None:
    await create_list(client, "Research")

    response = await call(client, "create_custom_list", name="RESEARCH")

    assert response.status_code == 409


async def test__create_custom_lists__resolves_names(client: AsyncClient) -> None:
    existing = await create_list(client, "Research")

    response = await call(client, "create_custom_lists", names=["research", "Reading", "research"])

    assert response.status_code == 200
    ids = response.json()
    assert ids[0] == existing
    assert ids[2] == existing
    assert ids[1] != existing


async def test__insert_page_to_list__missing_list_404(client: AsyncClient) -> None:
    response = await call(
        client, "insert_page_to_list", list_id=MISSING_LIST_ID, url="https://example.com/x",
    )

    assert response.status_code == 404
    assert response.json()["detail"] == f"No list exists for ID: {MISSING_LIST_ID}"


async def test__insert_page_to_list__invalid_url_422(client: AsyncClient) -> None:
    list_id = await create_list(client)

    response = await call(client, "insert_page_to_list", list_id=list_id, url="ftp://example.com")

    assert response.status_code == 422
    assert "unsupported scheme" in response.json()["detail"]


async def test__fetch_list_name_suggestions(client: AsyncClient) -> None:
    list_id = await create_list(client, "Research")
    await call(client, "insert_page_to_list", list_id=list_id, url="https://example.com/x")

    response = await call(
        client, "fetch_list_name_suggestions", name="res", url="https://example.com/x",
    )

    assert response.json() == [{"id": list_id, "name": "Research", "active": True}]


# =============================================================================
# Annotations
# =============================================================================


async def test__annotation_lifecycle_over_rpc(client: AsyncClient) -> None:
    response = await call(
        client,
        "create_annotation",
        annotation={
            "page_url": "https://example.com/x",
            "body": "quoted text",
            "selector": {"quote": "quoted text"},
            "created_when": "2024-05-01T12:00:00Z",
        },
    )
    assert response.status_code == 200
    annotation = response.json()
    url = annotation["url"]
    assert annotation["page_url"] == "example.com/x"
    assert annotation["selector"] == {"quote": "quoted text"}

    assert (await call(client, "toggle_annot_bookmark", url=url)).json() is True
    assert (await call(client, "toggle_annot_bookmark", url=url)).json() is False
    assert (await call(client, "annot_has_bookmark", url=url)).json() is False

    response = await call(client, "edit_annotation_tags", tags_to_add=["a", "b"], tags_to_delete=["a"], url=url)
    assert response.status_code == 200
    outcome = response.json()
    assert [r["key"] for r in outcome["added"]["results"]] == ["b"]
    assert (await call(client, "get_tags_by_annotation_url", url=url)).json() == ["b"]

    response = await call(client, "get_all_annotations_by_url", params={"url": "http://example.com/x/"})
    assert [a["url"] for a in response.json()] == [url]

    assert (await call(client, "delete_annotation", url=url)).json() == 1
    assert (await call(client, "get_annotation_by_pk", url=url)).json() is None


async def test__insert_annot_to_list__missing_list_404(client: AsyncClient) -> None:
    response = await call(client, "insert_annot_to_list", list_id=MISSING_LIST_ID, url="example.com/x#1")

    assert response.status_code == 404


async def test__index_page_from_tab_over_rpc(client: AsyncClient, fake_scraper: FakeScraper) -> None:
    response = await client.put("/preferences/index_links", json={"value": True})
    assert response.status_code == 200
    fake_scraper.pages["https://example.com/x"] = ("Example", "Body")

    response = await call(client, "index_page_from_tab", url="https://example.com/x", tab_id=3)

    assert response.status_code == 200
    page = response.json()
    assert page["url"] == "example.com/x"
    assert page["is_stub"] is False
    assert page["title"] == "Example"
    assert len(page["visits"]) == 1


# =============================================================================
# Tabs
# =============================================================================


async def test__add_open_tabs_to_list__explicit_tabs(client: AsyncClient) -> None:
    list_id = await create_list(client)

    response = await call(
        client,
        "add_open_tabs_to_list",
        list_id=list_id,
        tabs=[{"tab_id": 1, "url": "https://a.com"}, {"tab_id": 2, "url": "https://b.com"}],
    )

    assert response.status_code == 200
    outcome = response.json()
    assert [r["error"] for r in outcome["entries"]["results"]] == [None, None]

    pages = (await call(client, "fetch_list_pages_by_id", list_id=list_id)).json()
    assert sorted(p["page_url"] for p in pages) == ["a.com", "b.com"]


async def test__add_open_tabs_to_list__no_focused_window_409(client: AsyncClient) -> None:
    list_id = await create_list(client)

    response = await call(client, "add_open_tabs_to_list", list_id=list_id)

    assert response.status_code == 409
