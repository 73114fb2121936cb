"""In-memory stand-ins for Supabase, the speech provider and the story model."""

import copy
import json
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import uuid4

import httpx

from talebox.storyteller.generation import GeneratedStory


# =============================================================================
# Supabase tables
# =============================================================================

class FakeResult:
    def __init__(self, data: List[Dict[str, Any]]):
        self.data = data


def _comparable(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return value
    return value


class _Negation:
    def __init__(self, query: "FakeQuery"):
        self._query = query

    def is_(self, column: str, value: Any) -> "FakeQuery":
        expected = None if value == "null" else value
        self._query._filters.append(lambda row: row.get(column) is not expected)
        return self._query

    def in_(self, column: str, values: List[Any]) -> "FakeQuery":
        excluded = list(values)
        self._query._filters.append(lambda row: row.get(column) not in excluded)
        return self._query


class FakeQuery:
    """Chainable query mirroring the subset of postgrest used by the services."""

    def __init__(self, db: "FakeSupabase", table: str):
        self._db = db
        self._table = table
        self._action = "select"
        self._payload: Optional[Any] = None
        self._filters: List[Any] = []
        self._orders: List[tuple] = []
        self._limit: Optional[int] = None

    # actions
    def select(self, *_columns, **_kwargs) -> "FakeQuery":
        self._action = "select"
        return self

    def insert(self, data) -> "FakeQuery":
        self._action = "insert"
        self._payload = data
        return self

    def update(self, data: Dict[str, Any]) -> "FakeQuery":
        self._action = "update"
        self._payload = data
        return self

    def delete(self) -> "FakeQuery":
        self._action = "delete"
        return self

    # filters
    def eq(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def lt(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append(
            lambda row: row.get(column) is not None and _comparable(row[column]) < _comparable(value)
        )
        return self

    def gte(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append(
            lambda row: row.get(column) is not None and _comparable(row[column]) >= _comparable(value)
        )
        return self

    def in_(self, column: str, values: List[Any]) -> "FakeQuery":
        allowed = list(values)
        self._filters.append(lambda row: row.get(column) in allowed)
        return self

    @property
    def not_(self) -> _Negation:
        return _Negation(self)

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self._orders.append((column, desc))
        return self

    def limit(self, count: int) -> "FakeQuery":
        self._limit = count
        return self

    def _matching(self) -> List[Dict[str, Any]]:
        return [row for row in self._db.rows(self._table) if all(f(row) for f in self._filters)]

    def execute(self) -> FakeResult:
        self._db.calls.append((self._table, self._action))
        failure = self._db.failures.get((self._table, self._action))
        if failure:
            raise failure

        if self._action == "insert":
            payload = self._payload if isinstance(self._payload, list) else [self._payload]
            inserted = []
            for item in payload:
                row = copy.deepcopy(item)
                row.setdefault("id", str(uuid4()))
                self._db.rows(self._table).append(row)
                inserted.append(copy.deepcopy(row))
            return FakeResult(inserted)

        rows = self._matching()

        if self._action == "update":
            for row in rows:
                row.update(copy.deepcopy(self._payload))
            return FakeResult([copy.deepcopy(row) for row in rows])

        if self._action == "delete":
            table = self._db.rows(self._table)
            for row in rows:
                table.remove(row)
            return FakeResult([copy.deepcopy(row) for row in rows])

        for column, desc in reversed(self._orders):
            rows = sorted(
                rows,
                key=lambda row: (row.get(column) is None, _comparable(row.get(column))),
                reverse=desc,
            )
        if self._limit is not None:
            rows = rows[:self._limit]
        return FakeResult([copy.deepcopy(row) for row in rows])


# =============================================================================
# Supabase storage
# =============================================================================

class FakeBucket:
    def __init__(self, storage: "FakeStorage", name: str):
        self._storage = storage
        self.name = name

    def upload(self, path: str, data: bytes, file_options: Optional[Dict[str, str]] = None):
        if self._storage.fail_upload:
            raise RuntimeError("bucket unavailable")
        self._storage.files[(self.name, path)] = data
        self._storage.upload_options.append(file_options or {})
        return {"path": path}

    def get_public_url(self, path: str) -> str:
        if not self._storage.public_urls:
            return ""
        return f"https://storage.test/{self.name}/{path}"

    def create_signed_url(self, path: str, expires_in: int) -> Dict[str, str]:
        if self._storage.fail_signing:
            raise RuntimeError("signing failed")
        return {"signedURL": f"https://storage.test/signed/{self.name}/{path}?ttl={expires_in}"}

    def remove(self, paths: List[str]):
        for path in paths:
            self._storage.files.pop((self.name, path), None)
        return [{"name": path} for path in paths]


class FakeStorage:
    def __init__(self):
        self.files: Dict[tuple, bytes] = {}
        self.upload_options: List[Dict[str, str]] = []
        self.public_urls = True
        self.fail_upload = False
        self.fail_signing = False

    def from_(self, bucket: str) -> FakeBucket:
        return FakeBucket(self, bucket)


class FakeSupabase:
    """Minimal Supabase client: tables as lists of dicts plus a storage bucket."""

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.storage = FakeStorage()
        self.failures: Dict[tuple, Exception] = {}
        self.calls: List[tuple] = []

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.setdefault(table, [])

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def add(self, table: str, **row) -> Dict[str, Any]:
        row.setdefault("id", str(uuid4()))
        self.rows(table).append(row)
        return row

    def get(self, table: str, row_id: str) -> Optional[Dict[str, Any]]:
        for row in self.rows(table):
            if row.get("id") == row_id:
                return row
        return None


# =============================================================================
# Speech task provider
# =============================================================================

RESULT_URL = "https://cdn.test/narrations/result.mp3"


class FakeSpeechProvider:
    """Request handler for httpx.MockTransport emulating the task API."""

    def __init__(self):
        self.created: List[Dict[str, Any]] = []
        self.headers: List[httpx.Headers] = []
        self.status = "completed"
        self.task_error: Optional[str] = None
        self.result_url: Optional[str] = RESULT_URL
        self.create_response: Optional[httpx.Response] = None
        self.status_response: Optional[httpx.Response] = None
        self.audio = b"ID3-fake-mp3-bytes"
        self.download_status = 200
        self.status_calls = 0
        self.downloads = 0

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.headers.append(request.headers)

        if request.url.host == "cdn.test":
            self.downloads += 1
            return httpx.Response(self.download_status, content=self.audio)

        if request.method == "POST" and request.url.path.endswith("/labs/task"):
            if self.create_response is not None:
                return self.create_response
            self.created.append(json.loads(request.content))
            return httpx.Response(200, json={"task_id": f"task-{len(self.created)}"})

        if request.method == "GET" and "/labs/task/" in request.url.path:
            self.status_calls += 1
            if self.status_response is not None:
                return self.status_response
            body: Dict[str, Any] = {"status": self.status}
            if self.status == "completed":
                body["result"] = self.result_url
            if self.task_error:
                body["error"] = self.task_error
            return httpx.Response(200, json=body)

        return httpx.Response(404, text="not found")


# =============================================================================
# Story model
# =============================================================================

class FakeStoryGenerator:
    def __init__(self, title: str = "T", story_text: str = "S", error: Optional[Exception] = None):
        self.title = title
        self.story_text = story_text
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def generate(self, inputs: Dict[str, Any]) -> GeneratedStory:
        self.calls.append(inputs)
        if self.error:
            raise self.error
        return GeneratedStory(title=self.title, story_text=self.story_text)
