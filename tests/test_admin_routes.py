from contextlib import asynccontextmanager
from unittest.mock import patch

import pytest
from httpx import ASGITransport, AsyncClient

from mailnotes.app import create_app
from mailnotes.config import settings
from mailnotes.services.document_store import SqlDocumentStore


@pytest.fixture
async def client():
    transport = ASGITransport(app=create_app())
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def admin_key():
    with patch.object(settings, "admin_api_key", "test-admin-key"):
        yield "test-admin-key"


class TestAdminRoutes:
    async def test_rejects_wrong_key(self, client, admin_key):
        response = await client.get("/admin/stats", headers={"X-Admin-Key": "wrong"})

        assert response.status_code == 403

    async def test_rejects_when_no_key_configured(self, client):
        with patch.object(settings, "admin_api_key", ""):
            response = await client.get("/admin/stats", headers={"X-Admin-Key": "anything"})

        assert response.status_code == 403

    async def test_stats(self, client, db, admin_key):
        store = SqlDocumentStore(db)
        await store.put("0 - INBOX/2026-02-03 - Hello.md", b"note")
        await store.put("0 - INBOX/NEWSLETTERS/DIGESTS/2026-02-03 - Newsletter Digest.md", b"d")
        await db.commit()

        @asynccontextmanager
        async def mock_session():
            yield db

        with patch("mailnotes.routes.admin.async_session", mock_session):
            response = await client.get("/admin/stats", headers={"X-Admin-Key": admin_key})

        assert response.status_code == 200
        assert response.json() == {"documents": 2, "digests": 1}

    async def test_trigger_capture_enqueues(self, client, admin_key):
        with patch("mailnotes.tasks.capture.enqueue_capture") as mock_enqueue:
            response = await client.post(
                "/admin/tasks/capture",
                headers={"X-Admin-Key": admin_key},
                data={"recipient": "newsletters@example.com", "body-mime": "Subject: Hi\r\n\r\nBody"},
            )

        assert response.status_code == 200
        assert response.json()["status"] == "enqueued"
        mock_enqueue.assert_called_once_with(b"Subject: Hi\r\n\r\nBody", "newsletters@example.com")
