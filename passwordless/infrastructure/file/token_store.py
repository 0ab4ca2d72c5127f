from __future__ import annotations

import asyncio
import hashlib
import json
import os
import tempfile
import threading
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import Callable, Optional

from passwordless.domain import services as domain_services
from passwordless.domain.context import CallContext
from passwordless.domain.entities import Token, utc_now
from passwordless.domain.errors import StorageError, TokenExpired, TokenNotFound
from passwordless.domain.ports.token_store import TokenStorePort
from passwordless.domain.verification import evaluate_attempt, failure_for


class FileTokenStore(TokenStorePort):
    """
    One JSON document per token under `directory`.

    File names are the SHA-256 of the token id, so ids never reach the
    filesystem as paths. Writes go to a temp file that is renamed over the
    target. Blocking I/O runs in a worker thread; a process-wide lock per
    store instance spans each read-check-write.
    """

    def __init__(
        self,
        directory: str | os.PathLike[str],
        *,
        max_failed_attempts: int = 3,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self._dir = Path(directory)
        self._lock = threading.Lock()
        self._max_failed_attempts = max_failed_attempts
        self._now = now

    @property
    def directory(self) -> Path:
        return self._dir

    async def store(self, ctx: CallContext, token: Token) -> None:
        await self._run(ctx, self._store_sync, token)

    async def exists(self, ctx: CallContext, token_id: str) -> Token:
        return await self._run(ctx, self._exists_sync, token_id)

    async def update_attempts(
        self, ctx: CallContext, token_id: str, attempts: int
    ) -> None:
        await self._run(ctx, self._update_attempts_sync, token_id, attempts)

    async def delete(self, ctx: CallContext, token_id: str) -> None:
        await self._run(ctx, self._delete_sync, token_id)

    async def verify(
        self,
        ctx: CallContext,
        token_id: str,
        code: str,
        *,
        max_failed_attempts: Optional[int] = None,
    ) -> Token:
        matches = partial(domain_services.code_matches, code=code)
        limit = max_failed_attempts or self._max_failed_attempts
        return await self._run(ctx, self._verify_sync, token_id, matches, limit)

    async def verify_link(
        self,
        ctx: CallContext,
        token_id: str,
        provided_hash: str,
        *,
        max_failed_attempts: Optional[int] = None,
    ) -> Token:
        matches = partial(domain_services.link_matches, provided_hash=provided_hash)
        limit = max_failed_attempts or self._max_failed_attempts
        return await self._run(ctx, self._verify_sync, token_id, matches, limit)

    async def _run(self, ctx: CallContext, fn, *args):
        ctx.check()
        try:
            return await ctx.run(asyncio.to_thread(fn, *args))
        except OSError as e:
            raise StorageError(f"file store: {e}") from e

    def _path(self, token_id: str) -> Path:
        name = hashlib.sha256(token_id.encode("utf-8")).hexdigest()
        return self._dir / f"{name}.json"

    def _read(self, token_id: str) -> Optional[Token]:
        path = self._path(token_id)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            return Token.from_record(json.loads(raw))
        except (ValueError, KeyError) as e:
            raise StorageError(f"file store: corrupt token file {path.name}") from e

    def _write(self, token: Token) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        target = self._path(token.id)
        fd, tmp = tempfile.mkstemp(dir=self._dir, prefix=".tok-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(token.to_record(), fh)
            os.replace(tmp, target)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def _remove(self, token_id: str) -> None:
        self._path(token_id).unlink(missing_ok=True)

    def _store_sync(self, token: Token) -> None:
        with self._lock:
            self._write(token)

    def _exists_sync(self, token_id: str) -> Token:
        with self._lock:
            token = self._read(token_id)
            if token is None:
                raise TokenNotFound("token not found")
            if token.is_expired(self._now()):
                self._remove(token_id)
                raise TokenExpired("token expired")
            return token

    def _update_attempts_sync(self, token_id: str, attempts: int) -> None:
        with self._lock:
            token = self._read(token_id)
            if token is None:
                raise TokenNotFound("token not found")
            token.attempts = attempts
            self._write(token)

    def _delete_sync(self, token_id: str) -> None:
        with self._lock:
            self._remove(token_id)

    def _verify_sync(
        self, token_id: str, matches: Callable[[Token], bool], limit: int
    ) -> Token:
        with self._lock:
            token = self._read(token_id)
            if token is None:
                raise TokenNotFound("token not found")
            outcome = evaluate_attempt(
                token, matches, now=self._now(), max_failed_attempts=limit
            )
            if outcome.deletes_token:
                self._remove(token_id)
            else:
                self._write(token)

        failure = failure_for(outcome, token, limit)
        if failure is not None:
            raise failure
        return token
