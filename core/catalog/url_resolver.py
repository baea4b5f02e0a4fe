from __future__ import annotations

from typing import Awaitable, Callable
from urllib.parse import quote

import httpx

from core.catalog.types import URLResolution, URLTier
from core.logging_config import get_logger
from core.settings import ONE_YEAR_SECONDS
from core.storage.provider import ObjectStoreProvider

logger = get_logger(__name__)


class URLResolver:
    """Resolves a shareable URL for a stored object.

    Tiers are tried in order: the store's public URL, a long-lived signed URL,
    then a URL built from ``public_base_url``. ``resolve`` never raises and
    never returns an empty string.
    """

    def __init__(
        self,
        store: ObjectStoreProvider,
        *,
        public_base_url: str,
        signed_url_ttl_seconds: int = ONE_YEAR_SECONDS,
        verify_reachability: bool = False,
        reachability_timeout_seconds: float = 3.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._store = store
        self._public_base_url = public_base_url.rstrip("/")
        self._signed_url_ttl_seconds = signed_url_ttl_seconds
        self._verify_reachability = verify_reachability
        self._reachability_timeout_seconds = reachability_timeout_seconds
        self._transport = transport

    def constructed_url(self, bucket: str, storage_key: str) -> str:
        return f"{self._public_base_url}/{bucket}/{quote(storage_key)}"

    async def resolve(self, bucket: str, storage_key: str) -> str:
        resolution = await self.resolve_detailed(bucket, storage_key)
        return resolution.url

    async def resolve_detailed(self, bucket: str, storage_key: str) -> URLResolution:
        fallback: URLResolution | None = None

        candidates = (
            (URLTier.PUBLIC, lambda: self._store.public_url(bucket, storage_key)),
            (URLTier.SIGNED, lambda: self._store.signed_url(bucket, storage_key, self._signed_url_ttl_seconds)),
        )
        for tier, lookup in candidates:
            url = await self._attempt(tier, lookup, bucket, storage_key)
            if not url:
                continue
            verified = await self._check_reachable(url)
            resolution = URLResolution(url=url, tier=tier, verified=verified)
            if verified is not False:
                return self._report(resolution, bucket, storage_key)
            fallback = fallback or resolution

        constructed = self.constructed_url(bucket, storage_key)
        verified = await self._check_reachable(constructed)
        if verified is False and fallback is not None:
            return self._report(fallback, bucket, storage_key)
        return self._report(URLResolution(url=constructed, tier=URLTier.CONSTRUCTED, verified=verified), bucket, storage_key)

    async def _attempt(
        self,
        tier: URLTier,
        lookup: Callable[[], Awaitable[str | None]],
        bucket: str,
        storage_key: str,
    ) -> str | None:
        try:
            return await lookup()
        except Exception as err:
            logger.info("url_tier_unavailable", tier=tier.value, bucket=bucket, key=storage_key, error=str(err))
            return None

    async def _check_reachable(self, url: str) -> bool | None:
        """HEAD the URL when verification is on. ``None`` means not checked."""
        if not self._verify_reachability or not url.startswith(("http://", "https://")):
            return None

        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=self._reachability_timeout_seconds,
                follow_redirects=True,
            ) as client:
                response = await client.head(url)
        except httpx.HTTPError as err:
            logger.info("url_reachability_check_failed", url=url, error=str(err))
            return False

        if response.status_code >= 400:
            logger.info("url_unreachable", url=url, status_code=response.status_code)
            return False
        return True

    def _report(self, resolution: URLResolution, bucket: str, storage_key: str) -> URLResolution:
        if resolution.degraded or resolution.verified is False:
            logger.warning(
                "url_resolution_degraded",
                bucket=bucket,
                key=storage_key,
                tier=resolution.tier.value,
                verified=resolution.verified,
            )
        return resolution
