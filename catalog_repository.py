"""Catalog storage access for the two search tiers.

The product table lives in a relational database reached through
SQLAlchemy. Two capabilities are exposed:

* :meth:`SqlCatalogRepository.full_text_search` hands a pre-built boolean
  query to the engine's full-text index (MySQL ``MATCH ... AGAINST`` in
  boolean mode, or an SQLite FTS5 table).
* :meth:`SqlCatalogRepository.substring_search` ORs case-insensitive
  ``contains`` predicates over the main text columns.

Both only return active products. Database errors are wrapped in
:class:`CatalogQueryError` subclasses so callers can degrade gracefully.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol

from sqlalchemy import (
    Boolean,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    or_,
    select,
    text,
    true,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

FULL_TEXT_COLUMNS = ("name", "description", "technical_details", "features", "sku")
SUBSTRING_COLUMNS = ("name", "description", "sku")

metadata = MetaData()

products = Table(
    "products",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(255), nullable=False),
    Column("description", Text),
    Column("technical_details", Text),
    Column("features", Text),
    Column("sku", String(100)),
    Column("active", Boolean, nullable=False, default=True),
)


class CatalogQueryError(Exception):
    """A catalog query failed inside the database."""


class QuerySyntaxRejection(CatalogQueryError):
    """The full-text engine refused the boolean query string."""


class FullTextUnavailable(CatalogQueryError):
    """No full-text index exists for the product columns."""


@dataclass(frozen=True)
class ProductRecord:
    id: int
    name: str
    sku: Optional[str] = None
    description: Optional[str] = None
    technical_details: Optional[str] = None
    features: Optional[str] = None
    active: bool = True

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ProductRecord":
        return cls(
            id=row["id"],
            name=row["name"],
            sku=row.get("sku"),
            description=row.get("description"),
            technical_details=row.get("technical_details"),
            features=row.get("features"),
            active=bool(row.get("active", True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class CatalogRepository(Protocol):
    """What the search orchestrator needs from the catalog store."""

    def full_text_search(self, boolean_query: str, *, limit: int) -> List[ProductRecord]:
        ...

    def substring_search(self, needle: str, *, limit: int) -> List[ProductRecord]:
        ...


_SQLITE_FTS_DDL = (
    "CREATE VIRTUAL TABLE IF NOT EXISTS products_fts USING fts5("
    + ", ".join(FULL_TEXT_COLUMNS)
    + ", tokenize = 'unicode61 remove_diacritics 2')"
)

_SQLITE_FTS_QUERY = text(
    "SELECT p.id, p.name, p.sku, p.description, p.technical_details, p.features, p.active "
    "FROM (SELECT rowid AS hit_id, rank AS hit_rank FROM products_fts "
    "WHERE products_fts MATCH :query) AS hits "
    "JOIN products AS p ON p.id = hits.hit_id "
    "WHERE p.active = 1 ORDER BY hits.hit_rank LIMIT :limit"
)

_MYSQL_MATCH = "MATCH(" + ", ".join(FULL_TEXT_COLUMNS) + ") AGAINST(:query IN BOOLEAN MODE)"

_MYSQL_FTS_QUERY = text(
    "SELECT id, name, sku, description, technical_details, features, active "
    f"FROM products WHERE {_MYSQL_MATCH} AND active = 1 "
    f"ORDER BY {_MYSQL_MATCH} DESC LIMIT :limit"
)

# driver messages that mean "there is no index", not "bad query"
_MISSING_INDEX_MARKERS = (
    "no such table: products_fts",
    "can't find fulltext index",
    "no such module: fts5",
)


def _classify(exc: DBAPIError) -> CatalogQueryError:
    message = str(exc.orig if exc.orig is not None else exc)
    lowered = message.lower()
    if any(marker in lowered for marker in _MISSING_INDEX_MARKERS):
        return FullTextUnavailable(message)
    return QuerySyntaxRejection(message)


class SqlCatalogRepository:
    """SQLAlchemy-backed product catalog."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    @classmethod
    def from_url(cls, url: str, **engine_kwargs: Any) -> "SqlCatalogRepository":
        """Create the engine lazily; no connection is opened here."""
        if url.startswith("sqlite") and (":memory:" in url or url.rstrip("/") == "sqlite:"):
            engine_kwargs.setdefault("poolclass", StaticPool)
            engine_kwargs.setdefault("connect_args", {"check_same_thread": False})
        return cls(create_engine(url, **engine_kwargs))

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    @property
    def syntax_name(self) -> str:
        """Name of the boolean query grammar this database understands."""
        return "fts5" if self.dialect_name == "sqlite" else "mysql"

    # -- schema helpers (SQLite setups and tests) --------------------------

    def ensure_schema(self) -> None:
        """Create the product table and, on SQLite, its FTS5 index."""
        metadata.create_all(self.engine)
        if self.dialect_name == "sqlite":
            with self.engine.begin() as conn:
                conn.execute(text(_SQLITE_FTS_DDL))

    def add_products(self, rows: Iterable[Mapping[str, Any]]) -> int:
        """Insert products and keep the SQLite full-text index in sync."""
        prepared = [
            {
                "id": row["id"],
                "name": row["name"],
                "description": row.get("description"),
                "technical_details": row.get("technical_details"),
                "features": row.get("features"),
                "sku": row.get("sku"),
                "active": bool(row.get("active", True)),
            }
            for row in rows
        ]
        if not prepared:
            return 0
        with self.engine.begin() as conn:
            conn.execute(products.insert(), prepared)
            if self.dialect_name == "sqlite":
                conn.execute(
                    text(
                        "INSERT INTO products_fts(rowid, "
                        + ", ".join(FULL_TEXT_COLUMNS)
                        + ") VALUES (:id, "
                        + ", ".join(f":{c}" for c in FULL_TEXT_COLUMNS)
                        + ")"
                    ),
                    prepared,
                )
        return len(prepared)

    # -- capability A ------------------------------------------------------

    def full_text_search(self, boolean_query: str, *, limit: int) -> List[ProductRecord]:
        """Run ``boolean_query`` verbatim against the full-text index."""
        if not boolean_query.strip():
            return []
        stmt = _SQLITE_FTS_QUERY if self.dialect_name == "sqlite" else _MYSQL_FTS_QUERY
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(stmt, {"query": boolean_query, "limit": limit}).mappings().all()
        except DBAPIError as exc:
            raise _classify(exc) from exc
        except SQLAlchemyError as exc:
            raise CatalogQueryError(str(exc)) from exc
        return [ProductRecord.from_row(row) for row in rows]

    # -- capability B ------------------------------------------------------

    def substring_search(self, needle: str, *, limit: int) -> List[ProductRecord]:
        """Return active products whose text columns contain ``needle``."""
        needle = needle.strip()
        if not needle:
            return []
        predicates = [products.c[col].icontains(needle, autoescape=True) for col in SUBSTRING_COLUMNS]
        stmt = (
            select(products)
            .where(products.c.active == true(), or_(*predicates))
            .order_by(products.c.id)
            .limit(limit)
        )
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(stmt).mappings().all()
        except SQLAlchemyError as exc:
            raise CatalogQueryError(str(exc)) from exc
        return [ProductRecord.from_row(row) for row in rows]
