from __future__ import annotations

import inspect
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Iterable

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from starlette.responses import Response

_RESPONSE_DOC_ATTR = "__response_doc_config__"
_REQUEST_LOCATIONS = {"body", "query", "path", "header", "cookie", "form"}

PAGE_META_EXAMPLE = {"page": 0, "page_size": 10, "has_more": False}


@dataclass(frozen=True)
class ResponseDocConfig:
    message: str
    status_code: int
    description: str
    success_example: Any | None = None
    include_meta: bool = False
    response_codes: dict[int, str] | None = None


def success_payload(
    data: Any,
    message: str = "Success",
    *,
    meta: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {"success": True, "message": message, "data": data}
    if meta is not None:
        payload["meta"] = meta
    if request_id:
        payload["requestId"] = request_id
    return payload


def error_payload(message: str, data: Any = None, *, request_id: str | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {"success": False, "message": message, "data": data}
    if request_id:
        payload["requestId"] = request_id
    return payload


def error_response(
    *,
    status_code: int,
    message: str,
    data: Any = None,
    headers: dict[str, str] | None = None,
    request_id: str | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        headers=headers,
        content=jsonable_encoder(error_payload(message=message, data=data, request_id=request_id)),
    )


def request_id_of(request: Request | None) -> str | None:
    if request is None:
        return None
    return getattr(request.state, "request_id", None)


def _split_http_detail(detail: Any) -> tuple[str, dict[str, Any]]:
    """Turn ``HTTPException.detail`` into ``(message, {code, details})``."""
    if isinstance(detail, dict) and isinstance(detail.get("message"), str) and detail["message"].strip():
        return detail["message"], {
            "code": detail.get("code", "HTTP_EXCEPTION"),
            "details": detail.get("details"),
        }
    if isinstance(detail, str) and detail.strip():
        return detail, {"code": "HTTP_EXCEPTION", "details": None}
    if detail is None:
        return "Request failed", {"code": "HTTP_EXCEPTION", "details": None}
    return "Request failed", {"code": "HTTP_EXCEPTION", "details": detail}


def http_exception_response(exc: HTTPException, request: Request | None = None) -> JSONResponse:
    message, data = _split_http_detail(exc.detail)
    return error_response(
        status_code=exc.status_code,
        message=message,
        data=data,
        request_id=request_id_of(request),
        headers=exc.headers,
    )


def _error_location(loc: Iterable[Any]) -> tuple[str, str]:
    parts = [str(part) for part in loc]
    if parts and parts[0] in _REQUEST_LOCATIONS:
        location, path_parts = parts[0], parts[1:]
    else:
        location, path_parts = "body", parts
    return location, ".".join(path_parts) or "(root)"


def format_validation_error_details(errors: list[dict[str, Any]]) -> dict[str, Any]:
    field_errors: list[dict[str, str]] = []
    missing: list[str] = []
    for error in errors:
        raw_loc = error.get("loc") or ()
        location, path = _error_location(raw_loc if isinstance(raw_loc, (list, tuple)) else [raw_loc])
        error_type = str(error.get("type", "validation_error"))
        field_errors.append(
            {
                "path": path,
                "location": location,
                "message": str(error.get("msg", "Invalid value")),
                "errorType": error_type,
            }
        )
        if error_type == "missing":
            missing.append(path)

    if missing:
        summary = f"Validation failed: missing required field(s): {', '.join(missing)}."
    else:
        summary = f"Validation failed for {len(field_errors)} field(s)."
    return {"summary": summary, "fieldErrors": field_errors}


def _find_request(args: tuple[Any, ...], kwargs: dict[str, Any]) -> Request | None:
    for value in (*kwargs.values(), *args):
        if isinstance(value, Request):
            return value
    return None


def document_response(
    *,
    message: str = "Success",
    status_code: int = status.HTTP_200_OK,
    description: str = "Successful response",
    success_example: Any | None = None,
    include_meta: bool = False,
    response_codes: dict[int, str] | None = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Wrap a route so its return value is sent inside the success envelope.

    With ``include_meta`` the route returns ``(data, meta)``.
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        config = ResponseDocConfig(
            message=message,
            status_code=status_code,
            description=description,
            success_example=success_example,
            include_meta=include_meta,
            response_codes=response_codes,
        )

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Response:
            result = func(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
            if isinstance(result, Response):
                return result

            data, meta = result, None
            if config.include_meta and isinstance(result, tuple) and len(result) == 2:
                data, meta = result

            return JSONResponse(
                status_code=status_code,
                content=jsonable_encoder(
                    success_payload(
                        data=data,
                        message=message,
                        meta=meta,
                        request_id=request_id_of(_find_request(args, kwargs)),
                    )
                ),
            )

        setattr(wrapper, _RESPONSE_DOC_ATTR, config)
        return wrapper

    return decorator


def document_created(*, message: str = "Created", success_example: Any | None = None) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    return document_response(
        message=message,
        status_code=status.HTTP_201_CREATED,
        description="Resource created",
        success_example=success_example,
    )


def document_deleted(*, message: str = "Deleted") -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    return document_response(message=message, description="Resource deleted", success_example={"deleted": True})


def document_paginated(*, message: str = "Success") -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    return document_response(message=message, include_meta=True, success_example=[])


def apply_response_documentation(app: FastAPI) -> None:
    updated = False
    for route in app.routes:
        if not isinstance(route, APIRoute):
            continue
        config = getattr(route.endpoint, _RESPONSE_DOC_ATTR, None)
        if not isinstance(config, ResponseDocConfig):
            continue

        route.status_code = config.status_code
        responses = dict(route.responses or {})
        entry = dict(responses.get(config.status_code, {}))
        entry.setdefault("description", config.description)
        entry.setdefault(
            "content",
            {
                "application/json": {
                    "example": success_payload(
                        data=config.success_example,
                        message=config.message,
                        meta=PAGE_META_EXAMPLE if config.include_meta else None,
                    )
                }
            },
        )
        responses[config.status_code] = entry

        for code, code_description in (config.response_codes or {}).items():
            responses.setdefault(code, {"description": code_description})

        route.responses = responses
        updated = True

    if updated:
        app.openapi_schema = None
