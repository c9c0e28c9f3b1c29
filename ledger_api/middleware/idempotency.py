"""
Idempotency-Key gateway.

Mutating requests carrying the header are executed at most once per key:
the first one reserves the key, later ones either replay the captured
response or are told the original is still in flight.
"""

import base64
import logging
from typing import Callable, Dict, Optional

from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from ledger_api.core.errors import problem_response
from ledger_api.core.idempotency import IdempotencyRecord, IdempotencyStore, StoredResponse

logger = logging.getLogger(__name__)

GATED_METHODS = {"POST", "PUT", "PATCH", "DELETE"}
REPLAYED_HEADER = "Idempotency-Replayed"


class IdempotencyMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: ASGIApp,
        store: IdempotencyStore,
        header_name: str = "Idempotency-Key",
        ttl_seconds: int = 60 * 60 * 24,
    ):
        super().__init__(app)
        self.store = store
        self.header_name = header_name
        self.ttl_seconds = ttl_seconds

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.method not in GATED_METHODS:
            return await call_next(request)

        values = request.headers.getlist(self.header_name)
        if not values:
            return await call_next(request)

        path = request.url.path
        if len(values) > 1:
            return problem_response(
                status.HTTP_400_BAD_REQUEST,
                "INVALID_IDEMPOTENCY_KEY",
                f"Multiple {self.header_name} headers are not allowed.",
                path,
            )
        key = values[0].strip()
        if not key:
            return problem_response(
                status.HTTP_400_BAD_REQUEST,
                "INVALID_IDEMPOTENCY_KEY",
                f"The {self.header_name} header must not be empty.",
                path,
            )

        store_key = self._store_key(request, key)

        existing = await self.store.get(store_key)
        if existing is not None:
            return self._answer_existing(existing, key, path)

        if not await self._reserve(store_key):
            existing = await self.store.get(store_key)
            if existing is not None:
                return self._answer_existing(existing, key, path)
            return self._in_progress(key, path)

        try:
            response = await call_next(request)
        except Exception:
            await self._discard(store_key)
            raise

        if response.status_code >= 500:
            logger.warning(f"[IDEMPOTENCY] Server fault for key {key}, releasing reservation")
            await self._discard(store_key)
            response.headers[self.header_name] = key
            return response

        body = b""
        async for chunk in response.body_iterator:
            body += chunk if isinstance(chunk, bytes) else chunk.encode("utf-8")

        headers = self._capture_headers(response)
        headers[self.header_name.lower()] = key
        snapshot = self._snapshot(response.status_code, headers, body)
        try:
            await self.store.set(store_key, IdempotencyRecord.completed(snapshot), self.ttl_seconds)
        except Exception as e:
            # Side effects are already committed; a retry re-runs the handler.
            logger.error(f"[IDEMPOTENCY] Could not store response for key {key}: {type(e).__name__}: {e}")
            await self._discard(store_key)

        replay = Response(
            content=body,
            status_code=response.status_code,
            headers=headers,
            background=response.background,
        )
        replay.headers[REPLAYED_HEADER] = "false"
        return replay

    def _store_key(self, request: Request, key: str) -> str:
        principal = getattr(request.state, "principal", None)
        organization_id = principal.organization_id if principal is not None else None
        return f"{organization_id}:{key}" if organization_id else key

    async def _reserve(self, store_key: str) -> bool:
        record = IdempotencyRecord.processing()
        set_if_not_exists = getattr(self.store, "set_if_not_exists", None)
        if set_if_not_exists is not None:
            return await set_if_not_exists(store_key, record, self.ttl_seconds)
        if await self.store.get(store_key) is None:
            await self.store.set(store_key, record, self.ttl_seconds)
            return True
        return False

    async def _discard(self, store_key: str) -> None:
        delete = getattr(self.store, "delete", None)
        if delete is None:
            return
        try:
            await delete(store_key)
        except Exception as e:
            logger.error(f"[IDEMPOTENCY] Could not release key {store_key}: {type(e).__name__}: {e}")

    def _answer_existing(self, record: IdempotencyRecord, key: str, path: str) -> Response:
        if record.status == "completed" and record.response is not None:
            logger.info(f"[IDEMPOTENCY] Replaying stored response for key {key}")
            return self._replay(record.response, key)
        return self._in_progress(key, path)

    def _in_progress(self, key: str, path: str) -> Response:
        return problem_response(
            status.HTTP_409_CONFLICT,
            "IDEMPOTENCY_REQUEST_IN_PROGRESS",
            f"Another request with the same {self.header_name} is still being processed.",
            path,
            headers={self.header_name: key},
        )

    def _replay(self, stored: StoredResponse, key: str) -> Response:
        body = base64.b64decode(stored.body) if stored.is_base64_encoded else stored.body.encode("utf-8")
        response = Response(content=body, status_code=stored.status_code, headers=stored.headers)
        response.headers[self.header_name] = key
        response.headers[REPLAYED_HEADER] = "true"
        return response

    @staticmethod
    def _capture_headers(response: Response) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        for name, value in response.headers.items():
            headers[name] = f"{headers[name]}, {value}" if name in headers else value
        return headers

    @staticmethod
    def _snapshot(status_code: int, headers: Dict[str, str], body: bytes) -> StoredResponse:
        text: Optional[str]
        try:
            text = body.decode("utf-8")
        except UnicodeDecodeError:
            text = None
        if text is not None:
            return StoredResponse(status_code=status_code, headers=headers, body=text)
        return StoredResponse(
            status_code=status_code,
            headers=headers,
            body=base64.b64encode(body).decode("ascii"),
            is_base64_encoded=True,
        )
