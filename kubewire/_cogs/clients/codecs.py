"""
Encoding of the logical requests, and decoding of the raw responses.

A logical request is what the callers want: a method, a path, a query,
a payload object, and a hint on how to interpret the response. Here, it is
converted into the keyword arguments of ``aiohttp`` for the actual request.

The responses are first fully read into raw responses (status, headers, body),
so that they can be inspected outside of the ``aiohttp``'s context managers,
and then interpreted: either decoded into objects, or converted to the errors.
"""
import collections.abc
import dataclasses
import json
import urllib.parse
from collections.abc import Callable, Mapping
from typing import Any

import aiohttp

from kubewire._cogs.clients import errors
from kubewire._cogs.helpers import typedefs

JSON = 'application/json'
TEXT = 'text/plain'
JSON_PATCH = 'application/json-patch+json'
MERGE_PATCH = 'application/merge-patch+json'
STRATEGIC_MERGE_PATCH = 'application/strategic-merge-patch+json'

METHODS = frozenset({'GET', 'POST', 'PUT', 'PATCH', 'DELETE'})


@dataclasses.dataclass(frozen=True)
class Request:
    """
    A logical request: constructed per call, consumed once.

    The path is relative to the server's root: it must already include
    the server's path prefix (see :meth:`Transport.path`).
    """
    method: str
    path: str
    query: Mapping[str, Any] | None = None
    payload: Any | None = None
    content_type: str = JSON
    response_type: Callable[[Any], Any] | None = None
    on_chunk: typedefs.ChunkCallback | None = None
    read_timeout: float | None = None

    def __post_init__(self) -> None:
        if self.method not in METHODS:
            raise ValueError(f"Unsupported method: {self.method!r}")
        if not self.path:
            raise ValueError("The request's path is required.")

    @property
    def streaming(self) -> bool:
        return self.on_chunk is not None


@dataclasses.dataclass(frozen=True)
class RawResponse:
    status: int
    reason: str
    content_type: str | None
    body: bytes

    @property
    def text(self) -> str:
        return self.body.decode('utf-8', errors='replace')


def encode_query(query: Mapping[str, Any] | None) -> list[tuple[str, str]]:
    """
    Convert the query parameters to the wire values.

    The booleans are lower-cased (as Go's servers expect), the sequences
    are repeated as multiple keys, ``None`` values are omitted.
    """
    result: list[tuple[str, str]] = []
    for key, value in (query or {}).items():
        values = value if isinstance(value, (list, tuple)) else [value]
        for item in values:
            if item is None:
                continue
            elif isinstance(item, bool):
                result.append((key, 'true' if item else 'false'))
            else:
                result.append((key, str(item)))
    return result


def encode_request(request: Request, *, server: str) -> dict[str, Any]:
    headers: dict[str, str] = {}
    data: bytes | None = None
    if request.payload is not None:
        headers['Content-Type'] = request.content_type
        data = json.dumps(request.payload, default=_jsonable).encode('utf-8')
    return dict(
        method=request.method,
        url=server.rstrip('/') + request.path,
        params=encode_query(request.query),
        data=data,
        headers=headers,
    )


def format_request(request: Request) -> str:
    path = request.path
    params = encode_query(request.query)
    if params:
        path += '?' + urllib.parse.urlencode(params)
    body = f"<{type(request.payload).__name__}>" if request.payload is not None else None
    return ' '.join(part for part in [request.method, path, body] if part)


def format_payload(request: Request) -> str | None:
    if request.payload is None:
        return None
    return json.dumps(request.payload, default=_jsonable)


async def read_response(response: aiohttp.ClientResponse) -> RawResponse:
    content_type = response.headers.get('Content-Type')
    return RawResponse(
        status=response.status,
        reason=response.reason or '',
        content_type=content_type.split(';', 1)[0].strip().lower() if content_type else None,
        body=await response.read(),
    )


def detect_error(raw: RawResponse, request: Request) -> errors.APIError | None:
    """
    Build the specialised error for a failed response, or nothing for a success.

    The errors are classified by their status regardless of the content type:
    e.g. an HTML page with "404 Not Found" from a proxy is still "not found".
    """
    if 200 <= raw.status <= 299:
        return None

    data: Any
    if raw.content_type == JSON:
        try:
            data = json.loads(raw.body)
        except ValueError:
            data = raw.text
    else:
        data = raw.text
    return errors.make_error(raw.status, data, method=request.method, path=request.path,
                             reason=raw.reason)


def decode_body(raw: RawResponse, request: Request) -> Any:
    """
    Interpret the body of a successful response.

    JSON objects are converted with the request's response type if set;
    plain-text bodies are returned as strings (e.g. logs).
    Anything else is a violation of the protocol, and is not retried.
    """
    if raw.content_type == TEXT:
        return raw.text

    elif raw.content_type != JSON:
        raise errors.APIDecodeError(
            None, status=raw.status, method=request.method, path=request.path, reason=raw.reason,
            text=f"Invalid response Content-Type: {raw.content_type!r}")

    try:
        data = json.loads(raw.body)
    except ValueError as e:
        raise errors.APIDecodeError(
            None, status=raw.status, method=request.method, path=request.path, reason=raw.reason,
            text=f"Invalid JSON response: {e}") from e

    if not isinstance(data, collections.abc.Mapping):
        raise errors.APIDecodeError(
            None, status=raw.status, method=request.method, path=request.path, reason=raw.reason,
            text=f"Invalid JSON response: {data!r}"[:1000])

    return request.response_type(data) if request.response_type is not None else data


def decode_response(raw: RawResponse, request: Request) -> Any:
    error = detect_error(raw, request)
    if error is not None:
        raise error
    return decode_body(raw, request)


def _jsonable(obj: Any) -> Any:
    if isinstance(obj, collections.abc.Mapping):
        return dict(obj)
    return str(obj)
