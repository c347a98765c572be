from collections.abc import AsyncGenerator
from datetime import datetime, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from mailnotes.ingestion.email import Message, Sender
from mailnotes.models import Base
from mailnotes.services.document_store import MARKDOWN


class MemoryStore:
    """In-process stand-in for the document store."""

    def __init__(self, documents: dict[str, bytes] | None = None):
        self.documents = dict(documents or {})
        self.puts: list[str] = []

    async def get(self, key: str) -> bytes | None:
        return self.documents.get(key)

    async def put(self, key, body, content_type=MARKDOWN, metadata=None) -> None:
        self.documents[key] = body
        self.puts.append(key)

    async def exists(self, key: str) -> bool:
        return key in self.documents


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db(engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session
        await session.rollback()


def _make_message(
    id="msg-1@example.com",
    name="Design Weekly",
    address="hello@designweekly.com",
    subject="Issue #47: CSS Tips",
    received_at=datetime(2026, 2, 3, 10, 0, tzinfo=timezone.utc),
    html_body="<p>Grid layouts are finally easy.</p>",
    text_body="Grid layouts are finally easy.",
    headers=None,
    newsletter=True,
):
    headers = list(headers or [])
    if newsletter:
        headers.append(("List-Unsubscribe", "<https://designweekly.com/unsubscribe>"))
    return Message(
        id=id,
        sender=Sender(display_name=name, address=address),
        subject=subject,
        received_at=received_at,
        html_body=html_body,
        text_body=text_body,
        headers=headers,
    )


@pytest.fixture
def make_message():
    return _make_message
