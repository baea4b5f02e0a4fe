from __future__ import annotations

import asyncio
from typing import Awaitable, Callable
from uuid import uuid4

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_fixed

from core.catalog.errors import TransientStorageError
from core.catalog.types import BucketState, ProvisionResult
from core.logging_config import get_logger
from core.storage.provider import ObjectStoreProvider
from core.storage.types import ContainerCreation

logger = get_logger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]

PROBE_PREFIX = ".provision-probe/"


class BucketProvisioner:
    """Makes a bucket exist, be publicly readable and be verified usable.

    Readiness is only believed after a write/read/public-URL/delete round trip,
    because a bucket that exists is not necessarily writable or public yet.
    The per-bucket state is advisory: callers reset it with ``mark_unknown``
    when an operation against the bucket fails.
    """

    def __init__(
        self,
        store: ObjectStoreProvider,
        *,
        max_retries: int = 3,
        retry_delay_seconds: float = 2.0,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self._store = store
        self._max_retries = max_retries
        self._retry_delay_seconds = retry_delay_seconds
        self._sleep = sleep
        self._states: dict[str, BucketState] = {}

    def state(self, bucket: str) -> BucketState:
        return self._states.get(bucket, BucketState.UNKNOWN)

    def mark_unknown(self, bucket: str, reason: str | None = None) -> None:
        previous = self.state(bucket)
        self._states[bucket] = BucketState.UNKNOWN
        if previous != BucketState.UNKNOWN:
            logger.warning("bucket_state_reset", bucket=bucket, previous=previous.value, reason=reason)

    async def check_exists(self, bucket: str) -> bool:
        containers = await self._store.list_containers()
        return any(container.name == bucket for container in containers)

    async def ensure_ready(
        self,
        bucket: str,
        max_retries: int | None = None,
        *,
        force: bool = False,
    ) -> ProvisionResult:
        if not force and self.state(bucket) == BucketState.READY:
            return ProvisionResult(bucket=bucket, ready=True)

        attempts_allowed = max(1, max_retries if max_retries is not None else self._max_retries)
        attempts = 0

        def _log_retry(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning(
                "bucket_provision_attempt_failed",
                bucket=bucket,
                attempt=retry_state.attempt_number,
                max_attempts=attempts_allowed,
                error=str(error),
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts_allowed),
            wait=wait_fixed(self._retry_delay_seconds),
            retry=retry_if_exception_type(Exception),
            before_sleep=_log_retry,
            sleep=self._sleep,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    await self._provision_once(bucket)
        except Exception as err:
            self._states[bucket] = BucketState.BROKEN
            logger.error("bucket_provisioning_failed", bucket=bucket, attempts=attempts, error=str(err))
            return ProvisionResult(bucket=bucket, ready=False, attempts=attempts, reason=str(err))

        self._states[bucket] = BucketState.READY
        logger.info("bucket_ready", bucket=bucket, attempts=attempts)
        return ProvisionResult(bucket=bucket, ready=True, attempts=attempts)

    async def _provision_once(self, bucket: str) -> None:
        exists = False
        try:
            creation = await self._store.create_container(bucket, public=True)
            exists = True
            if creation == ContainerCreation.CREATED:
                logger.info("bucket_created", bucket=bucket)
        except TransientStorageError as err:
            logger.warning("bucket_create_inconclusive", bucket=bucket, error=str(err))

        if not exists:
            try:
                exists = await self.check_exists(bucket)
            except TransientStorageError as err:
                logger.warning("bucket_listing_inconclusive", bucket=bucket, error=str(err))
            else:
                if not exists:
                    raise TransientStorageError("provision", f"bucket '{bucket}' was not found after creation")

        await self._probe(bucket)

    async def _probe(self, bucket: str) -> None:
        probe_key = f"{PROBE_PREFIX}{uuid4().hex}.txt"
        payload = f"probe {probe_key}".encode()

        await self._store.put_object(bucket, probe_key, payload, content_type="text/plain", overwrite=True)
        try:
            echoed = await self._store.get_object(bucket, probe_key)
            if echoed != payload:
                raise TransientStorageError("probe", "read-back content does not match the written probe")
            public_url = await self._store.public_url(bucket, probe_key)
            if not public_url:
                raise TransientStorageError("probe", "bucket does not expose public URLs")
        finally:
            try:
                await self._store.remove_objects(bucket, [probe_key])
            except TransientStorageError as err:
                logger.warning("bucket_probe_cleanup_failed", bucket=bucket, key=probe_key, error=str(err))
