import enum
from datetime import datetime

from sqlalchemy import JSON, DateTime, LargeBinary, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class EmailSource(str, enum.Enum):
    gmail = "gmail"
    outlook = "outlook"
    icloud = "icloud"
    unknown = "unknown"


class EmailRoute(str, enum.Enum):
    task = "task"
    newsletter = "newsletter"
    agent = "agent"
    inbox = "inbox"


class Document(Base):
    __tablename__ = "documents"

    key: Mapped[str] = mapped_column(Text, primary_key=True)
    body: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    content_type: Mapped[str] = mapped_column(Text, nullable=False, default="text/markdown; charset=utf-8")
    metadata_: Mapped[dict] = mapped_column(
        "metadata", JSON().with_variant(JSONB, "postgresql"), default=dict
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )
