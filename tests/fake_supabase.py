"""In-memory stand-in for the parts of the Supabase client the app uses."""

import copy
import uuid
from types import SimpleNamespace


class FakeResponse:
    def __init__(self, data):
        self.data = data
        self.count = len(data) if isinstance(data, list) else None


class FakeQuery:
    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.operation = None
        self.payload = None
        self.filters = []
        self.ordering = []
        self.row_limit = None

    # operations
    def select(self, *columns, **kwargs):
        if self.operation is None:
            self.operation = "select"
        return self

    def insert(self, payload):
        self.operation, self.payload = "insert", payload
        return self

    def upsert(self, payload, **kwargs):
        self.operation, self.payload = "upsert", payload
        return self

    def update(self, payload):
        self.operation, self.payload = "update", payload
        return self

    def delete(self):
        self.operation = "delete"
        return self

    # filters
    def _add(self, column, test):
        self.filters.append((column, test))
        return self

    def eq(self, column, value):
        return self._add(column, lambda v: v == value)

    def neq(self, column, value):
        return self._add(column, lambda v: v != value)

    def gt(self, column, value):
        return self._add(column, lambda v: v is not None and v > value)

    def gte(self, column, value):
        return self._add(column, lambda v: v is not None and v >= value)

    def lt(self, column, value):
        return self._add(column, lambda v: v is not None and v < value)

    def lte(self, column, value):
        return self._add(column, lambda v: v is not None and v <= value)

    def in_(self, column, values):
        values = list(values)
        return self._add(column, lambda v: v in values)

    def order(self, column, desc=False, **kwargs):
        self.ordering.append((column, desc))
        return self

    def limit(self, count):
        self.row_limit = count
        return self

    def _matches(self, row):
        return all(test(row.get(column)) for column, test in self.filters)

    def execute(self):
        error = self.db.failures.get(self.table)
        if error is not None:
            raise error
        rows = self.db.tables.setdefault(self.table, [])
        self.db.calls.append((self.table, self.operation, self.payload))

        if self.operation in ("insert", "upsert"):
            items = self.payload if isinstance(self.payload, list) else [self.payload]
            result = []
            for item in items:
                item = dict(item)
                item.setdefault("id", str(uuid.uuid4()))
                existing = next((r for r in rows if r.get("id") == item["id"]), None)
                if existing is not None and self.operation == "upsert":
                    existing.update(item)
                    result.append(copy.deepcopy(existing))
                else:
                    rows.append(item)
                    result.append(copy.deepcopy(item))
            return FakeResponse(result)

        matched = [r for r in rows if self._matches(r)]
        if self.operation == "update":
            for row in matched:
                row.update(self.payload)
            return FakeResponse(copy.deepcopy(matched))
        if self.operation == "delete":
            self.db.tables[self.table] = [r for r in rows if not self._matches(r)]
            return FakeResponse(copy.deepcopy(matched))

        for column, desc in reversed(self.ordering):
            matched.sort(key=lambda r: (r.get(column) is None, r.get(column)), reverse=desc)
        if self.row_limit is not None:
            matched = matched[:self.row_limit]
        return FakeResponse(copy.deepcopy(matched))


class FakeAuthAdmin:
    def __init__(self):
        self.users = []
        self.passwords = {}

    def list_users(self):
        return list(self.users)

    def update_user_by_id(self, user_id, attributes):
        self.passwords[user_id] = attributes.get("password")
        return SimpleNamespace(user=SimpleNamespace(id=user_id))


class FakeSupabase:
    def __init__(self, tables=None):
        self.tables = copy.deepcopy(tables or {})
        self.failures = {}
        self.calls = []
        self.auth = SimpleNamespace(admin=FakeAuthAdmin())

    def table(self, name):
        return FakeQuery(self, name)

    def rows(self, name):
        return self.tables.setdefault(name, [])
