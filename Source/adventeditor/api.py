from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, List, Optional

import requests

from .config import DEFAULT_HEADERS, KEY_COLUMN, Settings
from .models import TextRecord, validate_slot

logger = logging.getLogger(__name__)


class TransportError(RuntimeError):
    """Network failure, non-2xx status or unparseable body from the backend."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        body: str = "",
        method: Optional[str] = None,
        url: Optional[str] = None,
    ):
        super().__init__(message)
        self.status = status
        self.body = body
        self.method = method
        self.url = url


class TextStoreAPI:
    """Thin HTTP client for the text table behind a PostgREST-style endpoint.

    Every call sends the ``apikey`` header and a bearer token built from the
    same credential. List, insert, update, delete and upsert map directly onto
    GET/POST/PATCH/DELETE requests against a single collection resource.
    """

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.url = settings.collection_url
        self.timeout = settings.timeout
        self.max_retries = settings.max_retries
        self.backoff_factor = settings.backoff_factor
        self.session = session or requests.Session()
        self.session.headers.update(DEFAULT_HEADERS)

    # --- Operations ---
    def list_all(self) -> List[TextRecord]:
        resp = self._request("get", params={"select": "*", "order": KEY_COLUMN})
        if not resp.text or not resp.text.strip():
            # Empty body means an empty table
            return []
        data = self._json(resp)
        if not isinstance(data, list):
            raise TransportError(
                f"Expected a JSON array from list, got {type(data).__name__}",
                status=resp.status_code,
                body=resp.text,
                method="GET",
                url=self.url,
            )
        try:
            return [TextRecord.from_row(row) for row in data]
        except ValueError as e:
            raise TransportError(str(e), status=resp.status_code, body=resp.text, method="GET", url=self.url)

    def insert(self, record: TextRecord) -> Optional[TextRecord]:
        validate_slot(record.slot_number)
        resp = self._request(
            "post",
            json=record.to_row(),
            headers={"prefer": "return=representation"},
        )
        return self._first_record(resp)

    def update(self, slot: int, fields: Dict[str, Any]) -> Optional[TextRecord]:
        """PATCH the row(s) for ``slot``. Matching nothing is not an error."""
        validate_slot(slot)
        body = {k: v for k, v in fields.items() if k != KEY_COLUMN}
        resp = self._request(
            "patch",
            params={KEY_COLUMN: f"eq.{slot}"},
            json=body,
            headers={"prefer": "return=representation"},
        )
        return self._first_record(resp)

    def upsert(self, record: TextRecord) -> Optional[TextRecord]:
        validate_slot(record.slot_number)
        resp = self._request(
            "post",
            params={"on_conflict": KEY_COLUMN},
            json=record.to_row(),
            headers={"prefer": "resolution=merge-duplicates,return=representation"},
        )
        return self._first_record(resp)

    def delete(self, slot: int) -> None:
        validate_slot(slot)
        self._request("delete", params={KEY_COLUMN: f"eq.{slot}"})

    # --- Core request with retry/backoff ---
    def _request(
        self,
        method: str,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        merged = {**self._auth_headers(), **(headers or {})}
        attempt = 0
        while True:
            try:
                resp = self.session.request(
                    method,
                    self.url,
                    params=params,
                    json=json,
                    headers=merged,
                    timeout=self.timeout,
                )
            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
                attempt += 1
                if attempt >= self.max_retries:
                    logger.error("%s %s failed after %d attempt(s): %s", method.upper(), self.url, attempt, e)
                    raise TransportError(
                        f"Network error: {e}", method=method.upper(), url=self.url
                    ) from e
                delay = self._backoff(attempt - 1)
                logger.warning("%s %s network error (%s); retrying in %.1fs", method.upper(), self.url, e, delay)
                time.sleep(delay)
                continue
            except requests.exceptions.RequestException as e:
                raise TransportError(f"Request failed: {e}", method=method.upper(), url=self.url) from e

            logger.debug("%s %s params=%s -> %s", method.upper(), self.url, params, resp.status_code)
            # Retry on 429 or 5xx
            if resp.status_code == 429 or 500 <= resp.status_code < 600:
                attempt += 1
                if attempt >= self.max_retries:
                    self._raise_for_status(resp, method)
                delay = self._retry_after_delay(resp) or self._backoff(attempt - 1)
                logger.warning("%s %s -> HTTP %s; retrying in %.1fs", method.upper(), self.url, resp.status_code, delay)
                time.sleep(delay)
                continue
            self._raise_for_status(resp, method)
            return resp

    def _backoff(self, attempt: int) -> float:
        return self.backoff_factor * (2 ** attempt)

    @staticmethod
    def _retry_after_delay(resp: requests.Response) -> Optional[float]:
        ra = resp.headers.get("Retry-After")
        if not ra:
            return None
        try:
            return float(ra)
        except ValueError:
            return None

    # --- Helpers ---
    def _auth_headers(self) -> Dict[str, str]:
        key = self.settings.api_key
        return {
            "apikey": key,
            "authorization": f"Bearer {key}",
        }

    def _raise_for_status(self, resp: requests.Response, method: str) -> None:
        if 200 <= resp.status_code < 300:
            return
        body = resp.text or ""
        snippet = body.strip()[:200] + ("..." if len(body.strip()) > 200 else "")
        if resp.status_code in (401, 403):
            message = f"Unauthorized ({resp.status_code}): check ADVENTEDITOR_API_KEY. {snippet}"
        elif resp.status_code == 404:
            message = f"Table not found (404): {self.url}"
        else:
            message = f"HTTP {resp.status_code}: {snippet}"
        logger.warning("%s %s -> %s", method.upper(), self.url, message)
        raise TransportError(message, status=resp.status_code, body=body, method=method.upper(), url=self.url)

    @staticmethod
    def _json(resp: requests.Response) -> Any:
        text = resp.text
        if not text or not text.strip():
            return {}
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            raise TransportError(
                f"Invalid JSON response. Content-Type: {resp.headers.get('content-type')}",
                status=resp.status_code,
                body=text,
                method=resp.request.method if resp.request is not None else None,
                url=resp.url or None,
            )

    def _first_record(self, resp: requests.Response) -> Optional[TextRecord]:
        data = self._json(resp)
        if isinstance(data, list):
            data = data[0] if data else None
        if not data:
            return None
        try:
            return TextRecord.from_row(data)
        except ValueError:
            # Representation without a key column; treat as no representation
            logger.debug("Ignoring unexpected representation: %r", data)
            return None
