"""Tests for catalog endpoints."""

from fastapi.testclient import TestClient


class TestCatalogRoutes:
    def test_empty_catalog(self, test_app: TestClient) -> None:
        response = test_app.get("/catalog")

        assert response.status_code == 200
        data = response.json()
        assert data["items"] == []
        assert data["total"] == 0

    def test_catalog_after_scan(self, test_app: TestClient, wait_for_idle, media_tree) -> None:
        assert test_app.post("/scan/start").status_code == 202
        wait_for_idle(test_app)

        response = test_app.get("/catalog", params={"page": 1, "page_size": 5})
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 12
        assert len(data["items"]) == 5
        titles = [item["title"] for item in data["items"]]
        assert titles == sorted(titles)
        assert "filePath" in data["items"][0]

        record = test_app.get("/catalog/record", params={"path": media_tree["corrupt"]})
        assert record.status_code == 200
        assert record.json()["fileName"] == "corrupt.mkv"
        assert "duration" not in record.json() or record.json()["duration"] is None

    def test_unknown_record_is_404(self, test_app: TestClient) -> None:
        response = test_app.get("/catalog/record", params={"path": "/no/such/file.mp4"})
        assert response.status_code == 404

    def test_page_size_is_bounded(self, test_app: TestClient) -> None:
        response = test_app.get("/catalog", params={"page_size": 1000})
        assert response.status_code == 422
