"""Unified API error response helpers.

Every error body has the shape {code, message, detail, context}.
"""
from __future__ import annotations

from typing import Any, NoReturn

from fastapi import HTTPException, Request


def build_error_payload(
    *,
    code: str,
    message: str,
    detail: Any = None,
    context: dict[str, Any] | None = None,
    request: Request | None = None,
) -> dict[str, Any]:
    payload_context = context.copy() if context else {}
    if request is not None:
        payload_context.setdefault("request_id", getattr(request.state, "request_id", None))
        payload_context.setdefault("correlation_id", getattr(request.state, "correlation_id", None))
        payload_context.setdefault("path", request.url.path)
        payload_context.setdefault("method", request.method)

    return {
        "code": code,
        "message": message,
        "detail": detail,
        "context": payload_context,
    }


def raise_api_error(
    *,
    status_code: int,
    code: str,
    message: str,
    detail: Any = None,
    context: dict[str, Any] | None = None,
) -> NoReturn:
    raise HTTPException(
        status_code=status_code,
        detail=build_error_payload(code=code, message=message, detail=detail, context=context),
    )


def raise_not_found(entity: str, entity_id: int) -> NoReturn:
    raise_api_error(
        status_code=404,
        code=f"{entity}_not_found",
        message=f"{entity.capitalize()} not found",
        detail=f"{entity.capitalize()} {entity_id} not found",
        context={f"{entity}_id": entity_id},
    )


def raise_conflict(code: str, message: str, detail: Any = None, context: dict[str, Any] | None = None) -> NoReturn:
    raise_api_error(status_code=409, code=code, message=message, detail=detail, context=context)
