from contextlib import asynccontextmanager
from datetime import date
from unittest.mock import patch

import pytest
from httpx import ASGITransport, AsyncClient

from mailnotes.app import create_app
from mailnotes.services.digest.document import DigestEntry
from mailnotes.services.digest.merger import DigestMerger, digest_key
from mailnotes.services.document_store import SqlDocumentStore

DAY = date(2026, 2, 3)


@pytest.fixture
async def client():
    transport = ASGITransport(app=create_app())
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def session(db):
    @asynccontextmanager
    async def mock_session():
        yield db

    return mock_session


async def _store_digest(db, *entries):
    merger = DigestMerger()
    document = None
    for entry in entries:
        document = merger.merge(document, entry, DAY).document
    await SqlDocumentStore(db).put(digest_key(DAY), document)
    await db.commit()


class TestDigestRoutes:
    async def test_missing_digest_returns_404(self, client, session):
        with patch("mailnotes.routes.digests.async_session", session):
            response = await client.get("/digests/2026-02-03")

        assert response.status_code == 404

    async def test_get_digest_markdown(self, client, db, session):
        await _store_digest(
            db, DigestEntry("id-1", "Design", "### Design Weekly — Issue #47\n\n> CSS")
        )

        with patch("mailnotes.routes.digests.async_session", session):
            response = await client.get("/digests/2026-02-03")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/markdown")
        assert "# 📬 Newsletter Digest — February 3, 2026" in response.text
        assert "### Design Weekly — Issue #47" in response.text

    async def test_get_digest_entries(self, client, db, session):
        await _store_digest(
            db,
            DigestEntry("id-1", "News", "### Briefing\n\n> Headlines"),
            DigestEntry("id-2", "Tech", "### TLDR\n\n> Rust"),
        )

        with patch("mailnotes.routes.digests.async_session", session):
            response = await client.get("/digests/2026-02-03/entries")

        assert response.status_code == 200
        data = response.json()
        assert data["day"] == "2026-02-03"
        assert data["newsletter_count"] == 2
        assert [e["message_id"] for e in data["entries"]] == ["id-1", "id-2"]
        assert [e["topic"] for e in data["entries"]] == ["News", "Tech"]

    async def test_unreadable_digest_entries_returns_422(self, client, db, session):
        await SqlDocumentStore(db).put(digest_key(DAY), b"not a digest")
        await db.commit()

        with patch("mailnotes.routes.digests.async_session", session):
            response = await client.get("/digests/2026-02-03/entries")

        assert response.status_code == 422

    async def test_invalid_date_rejected(self, client):
        response = await client.get("/digests/yesterday")

        assert response.status_code == 422
