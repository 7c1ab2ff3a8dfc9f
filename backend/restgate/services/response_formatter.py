"""
RestGate Backend — Response Formatter
=====================================

What:  Renders an envelope as JSON or XML according to the Accept header.
Why:   Successes, validation errors, 404s, 401s and 429s all go through the
       same negotiation, so an XML client never receives a JSON error.
How:   `render()` produces (body bytes, content type, status code);
       `to_response()` wraps that in a Starlette Response.

Negotiation:
    Accept contains "application/xml"  → XML under a <response> root
    anything else, or no Accept header → JSON

XML encoding (deterministic, key order preserved):
    {"a": 1}             → <response><a>1</a></response>
    {"data": [{..}, {..}]} → <data><item>..</item><item>..</item></data>
    true / false         → "true" / "false"
    null                 → empty element
"""

import json
import xml.etree.ElementTree as ET
from typing import Any, Mapping, NamedTuple, Optional

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel
from starlette.responses import Response

JSON_MEDIA_TYPE = "application/json"
XML_MEDIA_TYPE = "application/xml"
XML_ROOT = "response"
XML_LIST_ITEM = "item"


class RenderedResponse(NamedTuple):
    body: bytes
    media_type: str
    status_code: int


def wants_xml(accept_header: Optional[str]) -> bool:
    return bool(accept_header) and XML_MEDIA_TYPE in accept_header


def to_plain(payload: Any) -> Any:
    """Reduce envelopes and resource mappings to JSON-compatible primitives."""
    if isinstance(payload, BaseModel):
        return payload.model_dump(mode="json", by_alias=True, exclude_none=True)
    return jsonable_encoder(payload)


def _xml_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _append(parent: ET.Element, tag: str, value: Any) -> None:
    element = ET.SubElement(parent, tag)
    if value is None:
        return
    if isinstance(value, Mapping):
        for key, child in value.items():
            _append(element, str(key), child)
    elif isinstance(value, (list, tuple)):
        for child in value:
            _append(element, XML_LIST_ITEM, child)
    else:
        element.text = _xml_text(value)


def to_xml(plain: Any) -> bytes:
    root = ET.Element(XML_ROOT)
    if isinstance(plain, Mapping):
        for key, value in plain.items():
            _append(root, str(key), value)
    elif isinstance(plain, (list, tuple)):
        for value in plain:
            _append(root, XML_LIST_ITEM, value)
    elif plain is not None:
        root.text = _xml_text(plain)
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


def to_json(plain: Any) -> bytes:
    # Same encoding as Starlette's JSONResponse
    return json.dumps(
        plain, ensure_ascii=False, allow_nan=False, indent=None, separators=(",", ":")
    ).encode("utf-8")


class ResponseFormatter:
    def render(
        self, payload: Any, accept_header: Optional[str] = None, status_code: int = 200
    ) -> RenderedResponse:
        plain = to_plain(payload)
        if wants_xml(accept_header):
            return RenderedResponse(to_xml(plain), XML_MEDIA_TYPE, status_code)
        return RenderedResponse(to_json(plain), JSON_MEDIA_TYPE, status_code)

    def to_response(
        self,
        payload: Any,
        accept_header: Optional[str] = None,
        status_code: int = 200,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Response:
        rendered = self.render(payload, accept_header, status_code)
        return Response(
            content=rendered.body,
            status_code=rendered.status_code,
            media_type=rendered.media_type,
            headers=dict(headers) if headers else None,
        )
