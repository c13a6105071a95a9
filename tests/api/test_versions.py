"""Tests for note version history endpoints."""
from unittest.mock import AsyncMock
from uuid import UUID

from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from services.exceptions import VersionAllocationError
from services.version_service import VersionService
from tests.helpers import create_note, create_user

FAKE_UUID = "00000000-0000-0000-0000-000000000000"


async def create_note_via_api(client: AsyncClient, title: str = "Doc", content: str = "") -> dict:
    """Create a note as the dev user."""
    response = await client.post("/notes/", json={"title": title, "content": content})
    assert response.status_code == 201
    return response.json()


async def create_version_via_api(
    client: AsyncClient,
    note_id: str,
    reason: str = "manual",
    changes_summary: str | None = None,
) -> dict:
    """Snapshot a note as the dev user."""
    response = await client.post(
        f"/notes/{note_id}/versions/",
        json={"reason": reason, "changes_summary": changes_summary},
    )
    assert response.status_code == 201
    return response.json()


# =============================================================================
# Create Version Tests
# =============================================================================


async def test_create_version(client: AsyncClient) -> None:
    """A manual snapshot copies the note's current state."""
    note = await create_note_via_api(client, title="Plan", content="step 1\n")

    response = await client.post(
        f"/notes/{note['id']}/versions/",
        json={"reason": "manual", "changes_summary": "before refactor"},
    )
    assert response.status_code == 201

    data = response.json()
    assert data["version_number"] == 1
    assert data["note_id"] == note["id"]
    assert data["reason"] == "manual"
    assert data["title"] == "Plan"
    assert data["content"] == "step 1\n"
    assert data["changes_summary"] == "before refactor"
    assert data["created_by"] == note["created_by"]


async def test_create_version_numbers_increase(client: AsyncClient) -> None:
    """Successive snapshots get successive numbers."""
    note = await create_note_via_api(client)

    first = await create_version_via_api(client, note["id"], "autosave")
    second = await create_version_via_api(client, note["id"], "manual")
    assert (first["version_number"], second["version_number"]) == (1, 2)


async def test_create_version_rejects_restore_reason(client: AsyncClient) -> None:
    """Restore versions are only created by the restore endpoint."""
    note = await create_note_via_api(client)

    response = await client.post(f"/notes/{note['id']}/versions/", json={"reason": "restore"})
    assert response.status_code == 422


async def test_create_version_unknown_note(client: AsyncClient) -> None:
    """Snapshotting a missing note returns 404."""
    response = await client.post(f"/notes/{FAKE_UUID}/versions/", json={"reason": "manual"})
    assert response.status_code == 404


async def test_create_version_other_users_note(
    client: AsyncClient, db_session: AsyncSession,
) -> None:
    """Users can't snapshot notes they don't own."""
    other = await create_user(db_session, "other-user-create-version")
    note = await create_note(db_session, other)

    response = await client.post(f"/notes/{note.id}/versions/", json={"reason": "manual"})
    assert response.status_code == 404


async def test_create_version_allocation_conflict_returns_409(client: AsyncClient) -> None:
    """Exhausted number allocation surfaces as a retryable conflict."""
    from api.dependencies import get_version_service
    from api.main import app

    note = await create_note_via_api(client)
    service = VersionService()
    service.create_version = AsyncMock(side_effect=VersionAllocationError(UUID(note["id"]), 3))
    app.dependency_overrides[get_version_service] = lambda: service

    response = await client.post(f"/notes/{note['id']}/versions/", json={"reason": "autosave"})
    assert response.status_code == 409
    assert "retry" in response.json()["detail"]


# =============================================================================
# Autosave Gate Tests
# =============================================================================


async def test_should_create_without_autosaves(client: AsyncClient) -> None:
    """A note with no autosaves is due for one."""
    note = await create_note_via_api(client)

    response = await client.get(f"/notes/{note['id']}/versions/should-create")
    assert response.status_code == 200
    assert response.json() == {"should_create": True}


async def test_should_create_after_recent_autosave(client: AsyncClient) -> None:
    """Right after an autosave the gate is closed."""
    note = await create_note_via_api(client)
    await create_version_via_api(client, note["id"], "autosave")

    response = await client.get(f"/notes/{note['id']}/versions/should-create")
    assert response.json() == {"should_create": False}


async def test_should_create_ignores_manual_versions(client: AsyncClient) -> None:
    """Manual snapshots don't close the autosave gate."""
    note = await create_note_via_api(client)
    await create_version_via_api(client, note["id"], "manual")

    response = await client.get(f"/notes/{note['id']}/versions/should-create")
    assert response.json() == {"should_create": True}


async def test_should_create_unknown_note(client: AsyncClient) -> None:
    """The gate checks note access."""
    response = await client.get(f"/notes/{FAKE_UUID}/versions/should-create")
    assert response.status_code == 404


# =============================================================================
# History Tests
# =============================================================================


async def test_list_versions(client: AsyncClient) -> None:
    """History lists versions newest first with pagination metadata."""
    note = await create_note_via_api(client)
    for _ in range(3):
        await create_version_via_api(client, note["id"], "autosave")

    response = await client.get(f"/notes/{note['id']}/versions/")
    assert response.status_code == 200

    data = response.json()
    assert [v["version_number"] for v in data["versions"]] == [3, 2, 1]
    assert data["pagination"] == {"page": 1, "limit": 50, "total_count": 3, "total_pages": 1}
    # List items omit content
    assert "content" not in data["versions"][0]


async def test_list_versions_pagination(client: AsyncClient) -> None:
    """page and limit select a window of the history."""
    note = await create_note_via_api(client)
    for _ in range(5):
        await create_version_via_api(client, note["id"], "autosave")

    response = await client.get(f"/notes/{note['id']}/versions/", params={"page": 2, "limit": 2})
    data = response.json()
    assert [v["version_number"] for v in data["versions"]] == [3, 2]
    assert data["pagination"]["total_pages"] == 3


async def test_list_versions_reason_filter(client: AsyncClient) -> None:
    """The reason_filter query parameter filters the history."""
    note = await create_note_via_api(client)
    await create_version_via_api(client, note["id"], "autosave")
    await create_version_via_api(client, note["id"], "manual")

    response = await client.get(f"/notes/{note['id']}/versions/", params={"reason_filter": "manual"})
    data = response.json()
    assert [v["reason"] for v in data["versions"]] == ["manual"]
    assert data["pagination"]["total_count"] == 1


async def test_list_versions_invalid_paging(client: AsyncClient) -> None:
    """page must be >= 1 and limit between 1 and 100."""
    note = await create_note_via_api(client)
    url = f"/notes/{note['id']}/versions/"

    assert (await client.get(url, params={"page": 0})).status_code == 422
    assert (await client.get(url, params={"limit": 0})).status_code == 422
    assert (await client.get(url, params={"limit": 101})).status_code == 422
    assert (await client.get(url, params={"reason_filter": "bogus"})).status_code == 422


async def test_list_versions_other_users_note(
    client: AsyncClient, db_session: AsyncSession,
) -> None:
    """History of someone else's note returns 404."""
    other = await create_user(db_session, "other-user-list-versions")
    note = await create_note(db_session, other)

    response = await client.get(f"/notes/{note.id}/versions/")
    assert response.status_code == 404


async def test_list_versions_deleted_note(client: AsyncClient) -> None:
    """Deleting a note hides its history."""
    note = await create_note_via_api(client)
    await create_version_via_api(client, note["id"])
    await client.delete(f"/notes/{note['id']}")

    response = await client.get(f"/notes/{note['id']}/versions/")
    assert response.status_code == 404


# =============================================================================
# Get Version Tests
# =============================================================================


async def test_get_version(client: AsyncClient) -> None:
    """A single version includes its content."""
    note = await create_note_via_api(client, content="hello\n")
    version = await create_version_via_api(client, note["id"])

    response = await client.get(f"/notes/{note['id']}/versions/{version['id']}")
    assert response.status_code == 200
    assert response.json()["content"] == "hello\n"


async def test_get_version_not_found(client: AsyncClient) -> None:
    """Unknown version IDs return 404."""
    note = await create_note_via_api(client)

    response = await client.get(f"/notes/{note['id']}/versions/{FAKE_UUID}")
    assert response.status_code == 404
    assert response.json()["detail"] == "Version not found or access denied"


async def test_get_version_wrong_note(client: AsyncClient) -> None:
    """A version fetched under another note's path is a bad request."""
    note_a = await create_note_via_api(client, title="A")
    note_b = await create_note_via_api(client, title="B")
    version = await create_version_via_api(client, note_a["id"])

    response = await client.get(f"/notes/{note_b['id']}/versions/{version['id']}")
    assert response.status_code == 400
    assert response.json()["detail"] == "Version does not belong to this note"


# =============================================================================
# Restore Tests
# =============================================================================


async def test_restore_version(client: AsyncClient) -> None:
    """Restore brings back old content and saves the replaced state."""
    note = await create_note_via_api(client, title="Essay", content="first draft\n")
    version = await create_version_via_api(client, note["id"])
    await client.patch(f"/notes/{note['id']}", json={"content": "second draft\n"})

    response = await client.post(f"/notes/{note['id']}/versions/{version['id']}/restore")
    assert response.status_code == 200

    data = response.json()
    assert data["message"] == "Version restored successfully. Your previous version was saved."
    assert data["note"]["content"] == "first draft\n"
    assert data["backup_version"]["reason"] == "restore"
    assert data["backup_version"]["version_number"] == 2
    assert data["backup_version"]["content"] == "second draft\n"
    assert data["backup_version"]["changes_summary"] == "Backup before restoring version 1"

    current = (await client.get(f"/notes/{note['id']}")).json()
    assert current["content"] == "first draft\n"


async def test_restore_version_wrong_note(client: AsyncClient) -> None:
    """Restoring a version onto a different note is a bad request."""
    note_a = await create_note_via_api(client, title="A", content="a\n")
    note_b = await create_note_via_api(client, title="B", content="b\n")
    version = await create_version_via_api(client, note_a["id"])

    response = await client.post(f"/notes/{note_b['id']}/versions/{version['id']}/restore")
    assert response.status_code == 400

    # Nothing was written to note B
    history = (await client.get(f"/notes/{note_b['id']}/versions/")).json()
    assert history["pagination"]["total_count"] == 0
    assert (await client.get(f"/notes/{note_b['id']}")).json()["content"] == "b\n"


async def test_restore_version_not_found(client: AsyncClient) -> None:
    """Restoring an unknown version returns 404."""
    note = await create_note_via_api(client)

    response = await client.post(f"/notes/{note['id']}/versions/{FAKE_UUID}/restore")
    assert response.status_code == 404


# =============================================================================
# Compare Tests
# =============================================================================


async def test_compare_versions(client: AsyncClient) -> None:
    """Comparison reports changed fields and a line diff."""
    note = await create_note_via_api(client, title="Notes", content="one\ntwo\n")
    v1 = await create_version_via_api(client, note["id"])
    await client.patch(f"/notes/{note['id']}", json={"content": "one\nthree\n"})
    v2 = await create_version_via_api(client, note["id"])

    response = await client.get(
        f"/notes/{note['id']}/versions/compare",
        params={"version_id_1": v1["id"], "version_id_2": v2["id"]},
    )
    assert response.status_code == 200

    data = response.json()
    assert data["version1"]["version_number"] == 1
    assert data["version2"]["version_number"] == 2
    assert data["changes"] == {
        "title_changed": False,
        "content_changed": True,
        "content_state_changed": False,
    }
    assert "-two%0A" in data["content_diff"]
    assert "+three%0A" in data["content_diff"]


async def test_compare_versions_across_notes(client: AsyncClient) -> None:
    """Versions of different notes can't be compared."""
    note_a = await create_note_via_api(client, title="A")
    note_b = await create_note_via_api(client, title="B")
    v1 = await create_version_via_api(client, note_a["id"])
    v2 = await create_version_via_api(client, note_b["id"])

    response = await client.get(
        f"/notes/{note_a['id']}/versions/compare",
        params={"version_id_1": v1["id"], "version_id_2": v2["id"]},
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Versions belong to different notes"


async def test_compare_versions_under_wrong_note(client: AsyncClient) -> None:
    """Both versions must belong to the note in the path."""
    note_a = await create_note_via_api(client, title="A")
    note_b = await create_note_via_api(client, title="B")
    v1 = await create_version_via_api(client, note_a["id"])
    v2 = await create_version_via_api(client, note_a["id"])

    response = await client.get(
        f"/notes/{note_b['id']}/versions/compare",
        params={"version_id_1": v1["id"], "version_id_2": v2["id"]},
    )
    assert response.status_code == 400


async def test_compare_versions_requires_both_ids(client: AsyncClient) -> None:
    """Both version IDs are required query parameters."""
    note = await create_note_via_api(client)

    response = await client.get(f"/notes/{note['id']}/versions/compare")
    assert response.status_code == 422
