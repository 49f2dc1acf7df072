"""SQLAlchemy ORM models for the URL shortener.

Data Model Layout
=================
::
    url table
    ├─ id (INTEGER PRIMARY KEY)
    ├─ alias (VARCHAR(64) UNIQUE, INDEXED)
    ├─ url (TEXT NOT NULL)
    └─ created_at (TIMESTAMPTZ, DEFAULT NOW())

Key Behaviours
===============
- alias is unique; the database, not the application, has the final say.
- Rows are written once and never updated.

Classes:
    URLMapping:  One alias → target URL mapping.
"""

import datetime

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from shortener.database import Base

__all__ = ["MAX_ALIAS_LENGTH", "URLMapping"]

MAX_ALIAS_LENGTH = 64


class URLMapping(Base):
    __tablename__ = "url"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    alias: Mapped[str] = mapped_column(String(MAX_ALIAS_LENGTH), unique=True, index=True, nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<URLMapping(id={self.id}, alias='{self.alias}')>"
