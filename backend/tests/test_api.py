"""
Tests for API Routes.

Requires Python 3.11+.
"""

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from archive.builder import Archive, compute_hash
from publisher.state import ArchiveCell


@pytest.fixture
def cell() -> ArchiveCell:
    """Create an empty archive cell."""
    return ArchiveCell()


@pytest.fixture
def client(cell: ArchiveCell) -> TestClient:
    """Create a test client."""
    return TestClient(create_app(cell))


@pytest.fixture
def archive() -> Archive:
    data = b"PK\x05\x06" + b"\x00" * 18
    return Archive(content_hash=compute_hash(data), data=data, source_directory=Path("/src"))


class TestHealthEndpoint:
    """Test cases for health endpoint."""

    def test_health_before_build(self, client: TestClient):
        response = client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "not_ready"
        assert data["sha256"] is None
        assert "version" in data

    def test_health_after_build(self, client: TestClient, cell: ArchiveCell, archive: Archive):
        cell.swap(archive)

        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["sha256"] == archive.content_hash


class TestArchiveEndpoints:
    """Test cases for archive endpoints."""

    def test_not_ready(self, client: TestClient):
        assert client.get("/").status_code == 503
        assert client.get("/by-sha256/abc.zip").status_code == 503

    def test_serves_current_archive(self, client: TestClient, cell: ArchiveCell, archive: Archive):
        cell.swap(archive)

        response = client.get("/")
        assert response.status_code == 200
        assert response.content == archive.data
        assert response.headers["content-type"] == "application/zip"
        assert response.headers["content-disposition"] == (
            f'inline; filename="repo-{archive.content_hash}.zip"'
        )

    def test_query_hash_match(self, client: TestClient, cell: ArchiveCell, archive: Archive):
        cell.swap(archive)

        response = client.get("/", params={"sha256": archive.content_hash})
        assert response.status_code == 200
        assert response.content == archive.data

    def test_query_hash_gone(self, client: TestClient, cell: ArchiveCell, archive: Archive):
        cell.swap(archive)

        response = client.get("/", params={"sha256": "0" * 64})
        assert response.status_code == 410
        assert archive.content_hash in response.json()["detail"]

    def test_path_hash(self, client: TestClient, cell: ArchiveCell, archive: Archive):
        cell.swap(archive)

        response = client.get(f"/by-sha256/{archive.content_hash}.zip")
        assert response.status_code == 200
        assert response.content == archive.data

        assert client.get(f"/by-sha256/{'f' * 64}.zip").status_code == 410

    def test_superseded_archive_is_gone(self, client: TestClient, cell: ArchiveCell, archive: Archive):
        cell.swap(archive)
        newer = Archive(
            content_hash=compute_hash(b"newer"),
            data=b"newer",
            source_directory=archive.source_directory,
        )
        cell.swap(newer)

        assert client.get(f"/by-sha256/{archive.content_hash}.zip").status_code == 410
        assert client.get(f"/by-sha256/{newer.content_hash}.zip").content == b"newer"
