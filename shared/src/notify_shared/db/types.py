"""Column type for the opaque metadata maps on channels and deliveries.

Rendered as JSONB on PostgreSQL and plain JSON elsewhere (SQLite in tests).
Missing values load as an empty dict so callers never branch on None.
"""

from typing import Any

import sqlalchemy as sa
from sqlalchemy.types import TypeDecorator


class JSONMap(TypeDecorator):
    impl = sa.JSON
    cache_ok = True

    def load_dialect_impl(self, dialect: sa.Dialect) -> sa.types.TypeEngine:
        if dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import JSONB

            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(sa.JSON())

    def process_bind_param(
        self, value: dict[str, Any] | None, dialect: sa.Dialect
    ) -> dict[str, Any]:
        return dict(value) if value else {}

    def process_result_value(
        self, value: dict[str, Any] | None, dialect: sa.Dialect
    ) -> dict[str, Any]:
        return value or {}
