"""Tests for source registry endpoints."""

from unittest.mock import AsyncMock

from dropfeed.scheduler.schemas import RunOutcome
from dropfeed.sources.schemas import Source


class TestListSources:
    def test_list(self, client, mock_sources_service, sample_source):
        mock_sources_service.repository.list_sources.return_value = ([sample_source], 51)

        response = client.get("/sources?type=rss&status=active&search=semi&limit=50")

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 51
        assert data["has_more"] is True
        assert data["sources"][0]["name"] == "Semi Weekly"
        mock_sources_service.repository.list_sources.assert_awaited_once_with(
            type="rss", status="active", search="semi", limit=50, offset=0
        )

    def test_limit_bounds(self, client):
        assert client.get("/sources?limit=500").status_code == 422


class TestCrud:
    def test_create(self, client, mock_sources_service):
        async def _create(source: Source) -> Source:
            source.id = 12
            return source

        mock_sources_service.repository.create = AsyncMock(side_effect=_create)

        response = client.post(
            "/sources",
            json={"name": "New", "homepage_url": "https://new.example.com", "type": "website"},
        )

        assert response.status_code == 201
        assert response.json()["id"] == 12
        assert response.json()["status"] == "active"
        mock_sources_service.invalidate_cache.assert_called_once()

    def test_create_unknown_type(self, client):
        response = client.post(
            "/sources", json={"name": "New", "homepage_url": "https://x.example.com", "type": "podcast"}
        )
        assert response.status_code == 422

    def test_get_missing(self, client):
        assert client.get("/sources/99").status_code == 404

    def test_get(self, client, mock_sources_service, sample_source):
        mock_sources_service.repository.get.return_value = sample_source
        assert client.get("/sources/7").json()["feed_url"] == sample_source.feed_url

    def test_delete(self, client, mock_sources_service):
        mock_sources_service.repository.deactivate.return_value = True

        assert client.delete("/sources/7").status_code == 204
        mock_sources_service.repository.deactivate.assert_awaited_once_with(7)
        mock_sources_service.invalidate_cache.assert_called_once()

    def test_delete_missing(self, client):
        assert client.delete("/sources/7").status_code == 404


class TestPrioritize:
    def test_flags_sources(self, client, mock_scheduler):
        mock_scheduler.prioritize.return_value = [1]

        response = client.post("/sources/prioritize", json={"source_ids": [1, 2]})

        assert response.status_code == 200
        assert response.json() == {"requested": [1, 2], "flagged": [1]}

    def test_single_id(self, client, mock_scheduler):
        client.post("/sources/prioritize", json={"source_id": 4})
        mock_scheduler.prioritize.assert_awaited_once_with([4])

    def test_requires_ids(self, client):
        assert client.post("/sources/prioritize", json={}).status_code == 422


class TestRunNow:
    def test_background_by_default(self, client, mock_scheduler):
        mock_scheduler.run_now.return_value = [RunOutcome(1, "started")]

        response = client.post("/sources/run-now", json={"source_ids": [1]})

        assert response.status_code == 200
        assert response.json()["outcomes"][0]["status"] == "started"
        mock_scheduler.run_now.assert_awaited_once_with([1], wait=False)

    def test_wait(self, client, mock_scheduler):
        mock_scheduler.run_now.return_value = [RunOutcome(1, "success", items_ingested=3)]

        response = client.post("/sources/run-now?wait=true", json={"source_id": 1})

        assert response.json()["outcomes"][0]["items_ingested"] == 3
        mock_scheduler.run_now.assert_awaited_once_with([1], wait=True)

    def test_partial_conflict_is_ok(self, client, mock_scheduler):
        mock_scheduler.run_now.return_value = [
            RunOutcome(1, "conflict", error="Source 1 is already running"),
            RunOutcome(2, "started"),
        ]

        response = client.post("/sources/run-now", json={"source_ids": [1, 2]})

        assert response.status_code == 200

    def test_all_conflict_is_409(self, client, mock_scheduler):
        mock_scheduler.run_now.return_value = [
            RunOutcome(1, "conflict", error="Source 1 is already running"),
        ]

        response = client.post("/sources/run-now", json={"source_id": 1})

        assert response.status_code == 409
        assert response.json() == {
            "detail": "Source 1 is already running",
            "error_type": "concurrent_run_conflict",
        }
