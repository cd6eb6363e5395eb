from __future__ import annotations

import json
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest
import requests

from adventeditor.api import TransportError
from adventeditor.config import Settings
from adventeditor.models import TextRecord


def make_response(status: int = 200, body: Any = "", headers: Optional[Dict[str, str]] = None) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    if isinstance(body, (bytes, str)):
        raw = body.encode("utf-8") if isinstance(body, str) else body
    else:
        raw = json.dumps(body).encode("utf-8")
    resp._content = raw
    resp.encoding = "utf-8"
    resp.headers.update(headers or {})
    return resp


class FakeHTTPSession:
    """Stands in for requests.Session; replays queued responses or exceptions."""

    def __init__(self, *responses):
        self.headers: Dict[str, str] = {}
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        self.calls.append(
            {"method": method, "url": url, "params": params, "json": json, "headers": headers, "timeout": timeout}
        )
        if not self.responses:
            raise AssertionError(f"Unexpected request: {method} {url}")
        nxt = self.responses.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return nxt


class FakeStore:
    """In-memory text table with a unique slot constraint."""

    def __init__(self, rows=None):
        self.rows: Dict[int, TextRecord] = {r.slot_number: r for r in rows or []}
        self.calls: List[tuple] = []
        self.failures: Dict[str, Exception] = {}
        self._next_id = 100

    def _maybe_fail(self, op: str) -> None:
        if op in self.failures:
            raise self.failures[op]

    def list_all(self):
        self.calls.append(("list_all",))
        self._maybe_fail("list_all")
        return [replace(r) for r in self.rows.values()]

    def insert(self, record):
        self.calls.append(("insert", record))
        self._maybe_fail("insert")
        if record.slot_number in self.rows:
            raise TransportError(
                "HTTP 409: duplicate key value violates unique constraint",
                status=409,
                body='{"code":"23505"}',
            )
        self._next_id += 1
        stored = replace(record, id=self._next_id)
        self.rows[record.slot_number] = stored
        return replace(stored)

    def update(self, slot, fields):
        self.calls.append(("update", slot, dict(fields)))
        self._maybe_fail("update")
        current = self.rows.get(slot)
        if current is None:
            return None
        stored = replace(
            current,
            title=fields.get("title", current.title),
            content=fields.get("content", current.content),
            updated_at=fields.get("updated_at", current.updated_at),
        )
        self.rows[slot] = stored
        return replace(stored)

    def upsert(self, record):
        self.calls.append(("upsert", record))
        self._maybe_fail("upsert")
        current = self.rows.get(record.slot_number)
        stored = replace(record, id=current.id if current else 1)
        self.rows[record.slot_number] = stored
        return replace(stored)

    def delete(self, slot):
        self.calls.append(("delete", slot))
        self._maybe_fail("delete")
        self.rows.pop(slot, None)

    def ops(self) -> List[str]:
        return [c[0] for c in self.calls]


class StepClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 12, 1, 9, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + timedelta(seconds=1)
        return current


@pytest.fixture
def settings() -> Settings:
    return Settings(
        base_url="https://example.supabase.co",
        api_key="secret-key",
        max_retries=3,
        backoff_factor=0.0,
    )


@pytest.fixture
def clock() -> StepClock:
    return StepClock()
