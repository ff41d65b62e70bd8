import re
from datetime import datetime, timezone

import pytest

from src.observability import reset_metrics


class FakeResponse:
    def __init__(self, data):
        self.data = data


def _ilike_regex(pattern: str) -> re.Pattern:
    parts = [re.escape(part) for part in pattern.split("%")]
    return re.compile("^" + ".*".join(parts) + "$", re.IGNORECASE | re.DOTALL)


class FakeQuery:
    def __init__(self, table_name: str, db: "FakeSupabase"):
        self.table_name = table_name
        self.db = db
        self.operation = "select"
        self.payload = None
        self.on_conflict = None
        self.filters = []

    def select(self, _fields: str):
        self.operation = "select"
        return self

    def insert(self, payload):
        self.operation = "insert"
        self.payload = payload
        return self

    def update(self, payload: dict):
        self.operation = "update"
        self.payload = payload
        return self

    def upsert(self, payload: dict, on_conflict: str = "id"):
        self.operation = "upsert"
        self.payload = payload
        self.on_conflict = on_conflict
        return self

    def eq(self, key: str, value):
        self.filters.append(("eq", key, value))
        return self

    def is_(self, key: str, value):
        self.filters.append(("is", key, value))
        return self

    def ilike(self, key: str, pattern: str):
        self.filters.append(("ilike", key, _ilike_regex(pattern)))
        return self

    def in_(self, key: str, values):
        self.filters.append(("in", key, [str(value) for value in values]))
        return self

    def gte(self, key: str, value):
        self.filters.append(("gte", key, value))
        return self

    def _matches(self, row: dict) -> bool:
        for kind, key, value in self.filters:
            current = row.get(key)
            if kind == "eq" and current != value:
                return False
            if kind == "is" and value == "null" and current is not None:
                return False
            if kind == "ilike" and (current is None or not value.match(str(current))):
                return False
            if kind == "in" and str(current) not in value:
                return False
            if kind == "gte" and (current is None or str(current) < str(value)):
                return False
        return True

    def execute(self):
        self.db.calls.append((self.table_name, self.operation, self.payload, list(self.filters)))
        if self.db.fail_tables.get(self.table_name) in {self.operation, "*"}:
            raise RuntimeError(f"{self.table_name} unavailable")
        table = self.db.tables.setdefault(self.table_name, [])

        if self.operation == "insert":
            rows = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = []
            for payload in rows:
                row = dict(payload or {})
                row.setdefault("id", f"{self.table_name}-{len(table) + 1}")
                row.setdefault("created_at", _ts())
                table.append(row)
                inserted.append(dict(row))
            return FakeResponse(inserted)

        if self.operation == "upsert":
            for row in table:
                if row.get(self.on_conflict) == self.payload.get(self.on_conflict):
                    row.update(self.payload)
                    return FakeResponse([dict(row)])
            row = dict(self.payload)
            table.append(row)
            return FakeResponse([dict(row)])

        if self.operation == "update":
            updated = []
            for row in table:
                if self._matches(row):
                    row.update(self.payload or {})
                    updated.append(dict(row))
            return FakeResponse(updated)

        return FakeResponse([dict(row) for row in table if self._matches(row)])


class FakeSupabase:
    def __init__(self, tables: dict | None = None):
        self.tables = tables or {}
        self.calls = []
        self.fail_tables = {}

    def table(self, table_name: str):
        return FakeQuery(table_name, self)

    def rows(self, table_name: str) -> list[dict]:
        return self.tables.setdefault(table_name, [])


def _ts() -> str:
    return datetime.now(timezone.utc).isoformat()


@pytest.fixture
def fake_db():
    return FakeSupabase()


@pytest.fixture(autouse=True)
def _reset_metrics():
    reset_metrics()
    yield
    reset_metrics()
