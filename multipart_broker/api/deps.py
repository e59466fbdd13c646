from __future__ import annotations

import json
from typing import Any

from fastapi import Request

from multipart_broker.services.multipart_service import (
    InvalidParameterError,
    MultipartService,
)


def get_multipart_service(request: Request) -> MultipartService:
    return request.app.state.multipart_service


async def get_request_params(request: Request) -> dict[str, Any]:
    """Query parameters merged with the JSON-object body (body wins)."""
    params: dict[str, Any] = dict(request.query_params)
    raw_body = await request.body()
    if not raw_body.strip():
        return params
    try:
        payload = json.loads(raw_body)
    except ValueError as exc:
        raise InvalidParameterError("Invalid JSON body") from exc
    if not isinstance(payload, dict):
        raise InvalidParameterError("Request body must be a JSON object")
    params.update(payload)
    return params
