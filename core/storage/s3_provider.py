from __future__ import annotations

import asyncio
import json
from functools import partial
from typing import Any
from urllib.parse import quote

from botocore.exceptions import BotoCoreError, ClientError

from core.catalog.errors import TransientStorageError
from core.logging_config import get_logger
from core.storage.provider import ObjectStoreProvider
from core.storage.types import ContainerCreation, ContainerInfo, StorageBackend, StoredObject

logger = get_logger(__name__)

# SigV4 presigned URLs cannot outlive seven days.
S3_MAX_PRESIGN_SECONDS = 7 * 24 * 60 * 60


def _error_code(err: ClientError) -> str:
    return str(err.response.get("Error", {}).get("Code", ""))


def public_read_policy(bucket: str) -> dict[str, Any]:
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Sid": "PublicReadGetObject",
                "Effect": "Allow",
                "Principal": "*",
                "Action": ["s3:GetObject"],
                "Resource": [f"arn:aws:s3:::{bucket}/*"],
            }
        ],
    }


class S3StorageProvider(ObjectStoreProvider):
    backend_name = StorageBackend.S3.value

    def __init__(
        self,
        *,
        region: str | None = None,
        endpoint_url: str | None = None,
        public_base_url: str | None = None,
        client: Any | None = None,
    ) -> None:
        if client is None:
            try:
                import boto3
            except ModuleNotFoundError as err:
                raise RuntimeError("boto3 is required for S3 storage provider") from err
            client = boto3.client("s3", region_name=region, endpoint_url=endpoint_url)

        self._client = client
        self._region = region
        self._endpoint_url = endpoint_url.rstrip("/") if endpoint_url else None
        self._public_base_url = public_base_url.rstrip("/") if public_base_url else None

    async def _run(self, operation: str, func, **kwargs: Any) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, partial(func, **kwargs))
        except (BotoCoreError, ClientError) as err:
            raise TransientStorageError(operation, str(err)) from err

    async def create_container(self, name: str, *, public: bool) -> ContainerCreation:
        params: dict[str, Any] = {"Bucket": name}
        if self._region and self._region != "us-east-1":
            params["CreateBucketConfiguration"] = {"LocationConstraint": self._region}

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, partial(self._client.create_bucket, **params))
            outcome = ContainerCreation.CREATED
        except ClientError as err:
            # BucketAlreadyExists means another account owns the name.
            if _error_code(err) != "BucketAlreadyOwnedByYou":
                raise TransientStorageError("create_container", str(err)) from err
            outcome = ContainerCreation.ALREADY_EXISTS
        except BotoCoreError as err:
            raise TransientStorageError("create_container", str(err)) from err

        if public:
            await self._apply_public_read_policy(name)
        return outcome

    async def _apply_public_read_policy(self, name: str) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None,
                partial(self._client.delete_public_access_block, Bucket=name),
            )
        except ClientError as err:
            # S3-compatible stores without public access blocks answer NotImplemented.
            logger.debug("public_access_block_unchanged", bucket=name, code=_error_code(err))

        await self._run(
            "put_bucket_policy",
            self._client.put_bucket_policy,
            Bucket=name,
            Policy=json.dumps(public_read_policy(name)),
        )

    async def list_containers(self) -> list[ContainerInfo]:
        response = await self._run("list_containers", self._client.list_buckets)
        return [ContainerInfo(name=item["Name"]) for item in response.get("Buckets", [])]

    async def put_object(
        self,
        container: str,
        key: str,
        payload: bytes,
        *,
        content_type: str,
        overwrite: bool = True,
    ) -> None:
        params: dict[str, Any] = {
            "Bucket": container,
            "Key": key,
            "Body": payload,
            "ContentType": content_type,
        }
        if not overwrite:
            params["IfNoneMatch"] = "*"
        await self._run("put_object", self._client.put_object, **params)

    async def get_object(self, container: str, key: str) -> bytes:
        response = await self._run("get_object", self._client.get_object, Bucket=container, Key=key)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, response["Body"].read)

    async def list_objects(self, container: str, prefix: str = "") -> list[StoredObject]:
        def _collect() -> list[StoredObject]:
            paginator = self._client.get_paginator("list_objects_v2")
            objects: list[StoredObject] = []
            for page in paginator.paginate(Bucket=container, Prefix=prefix):
                for item in page.get("Contents", []):
                    objects.append(
                        StoredObject(
                            key=item["Key"],
                            size=int(item.get("Size", 0)),
                            created_at=item.get("LastModified"),
                        )
                    )
            return objects

        return await self._run("list_objects", _collect)

    async def remove_objects(self, container: str, keys: list[str]) -> None:
        if not keys:
            return
        response = await self._run(
            "remove_objects",
            self._client.delete_objects,
            Bucket=container,
            Delete={"Objects": [{"Key": key} for key in keys], "Quiet": True},
        )
        errors = response.get("Errors") or []
        if errors:
            failed = ", ".join(f"{item.get('Key')}: {item.get('Code')}" for item in errors)
            raise TransientStorageError("remove_objects", failed)

    async def public_url(self, container: str, key: str) -> str | None:
        quoted_key = quote(key)
        if self._public_base_url:
            return f"{self._public_base_url}/{container}/{quoted_key}"
        if self._endpoint_url:
            return f"{self._endpoint_url}/{container}/{quoted_key}"
        region = self._region or "us-east-1"
        return f"https://{container}.s3.{region}.amazonaws.com/{quoted_key}"

    async def signed_url(self, container: str, key: str, ttl_seconds: int) -> str | None:
        expires_in = max(1, min(ttl_seconds, S3_MAX_PRESIGN_SECONDS))
        try:
            return self._client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": container, "Key": key},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as err:
            raise TransientStorageError("signed_url", str(err)) from err
