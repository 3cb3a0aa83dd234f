"""
API errors.

The underlying client library (now, ``aiohttp``) can be replaced in the future.
We cannot rely on embedding its exceptions all over the code and in the users'
code. Hence, we have our own hierarchy of exceptions for the API errors.

Low-level errors, such as the network connectivity issues, SSL/HTTPS issues,
etc, are escalated from the client library as is, since they are related not
to the domain of the API, but rather to the networking and encryption.

Some selected statuses of the API errors are made into their own classes,
so that they could be intercepted and handled in other places (e.g. skipped
or retried in the batch requests). All other statuses are raised as the base
classes for the client-side (4xx) and server-side (5xx) errors, or as the base
error class, and are indistinguishable from each other (except via the fields).

Unlike the underlying client library's errors, the API errors contain more
information about the reasons -- as provided by the API in its response bodies,
not guessed only by HTTP statuses alone: the structured ``Status`` document
is kept as is for programmatic inspection.
"""
import collections.abc
from collections.abc import Collection
from typing import Any, cast

from typing_extensions import Literal, TypedDict


class RawStatusCause(TypedDict):
    field: str
    reason: str
    message: str


class RawStatusDetails(TypedDict):
    name: str
    uid: str
    retryAfterSeconds: int
    kind: str
    group: str
    causes: Collection[RawStatusCause]


# https://kubernetes.io/docs/reference/generated/kubernetes-api/v1.19/#status-v1-meta
class RawStatus(TypedDict):
    apiVersion: str
    kind: Literal["Status"]
    code: int
    status: Literal["Success", "Failure"]
    reason: str
    message: str
    details: RawStatusDetails


class APIError(Exception):

    def __init__(
            self,
            payload: RawStatus | None,
            *,
            status: int,
            method: str | None = None,
            path: str | None = None,
            reason: str | None = None,
            text: str | None = None,
    ) -> None:
        message = payload.get('message') if payload else None
        super().__init__(message, payload)
        self._status = status
        self._payload = payload
        self._method = method
        self._path = path
        self._reason = reason
        self._text = text

    def __str__(self) -> str:
        what = f"{self._method} {self._path}" if self._method else self._path or ''
        text = f"HTTP {self._status} {self._reason or ''}".strip()
        text = f"{what} => {text}" if what else text
        explanation = self.message or self._text
        return f"{text}: {explanation}" if explanation else text

    @property
    def status(self) -> int:
        return self._status

    @property
    def method(self) -> str | None:
        return self._method

    @property
    def path(self) -> str | None:
        return self._path

    @property
    def reason(self) -> str | None:
        """ The HTTP reason phrase, e.g. "Not Found". """
        return self._reason

    @property
    def payload(self) -> RawStatus | None:
        """ The ``Status`` document as returned by the server, if it was returned. """
        return self._payload

    @property
    def code(self) -> int | None:
        return self._payload.get('code') if self._payload else None

    @property
    def message(self) -> str | None:
        return self._payload.get('message') if self._payload else None

    @property
    def status_reason(self) -> str | None:
        """ The machine-readable reason of the ``Status``, e.g. "AlreadyExists". """
        return self._payload.get('reason') if self._payload else None

    @property
    def details(self) -> RawStatusDetails | None:
        return self._payload.get('details') if self._payload else None

    @property
    def causes(self) -> Collection[RawStatusCause]:
        details = self.details
        return details.get('causes', []) if details else []


class APIDecodeError(APIError):
    """ A nominally successful response that cannot be interpreted. """


class APIClientError(APIError):
    pass


class APIBadRequestError(APIClientError):
    pass


class APIUnauthorizedError(APIClientError):
    pass


class APIForbiddenError(APIClientError):
    pass


class APINotFoundError(APIClientError):
    pass


class APIMethodNotAllowedError(APIClientError):
    pass


class APIConflictError(APIClientError):
    pass


class APIInvalidError(APIClientError):
    pass


class APIThrottledError(APIClientError):
    pass


class APIServerError(APIError):
    pass


class APIInternalServerError(APIServerError):
    pass


class APIServiceUnavailableError(APIServerError):
    pass


# Extendable: more specific classes can be registered here by the users.
HTTP_STATUS_ERRORS: dict[int, type[APIError]] = {
    400: APIBadRequestError,
    401: APIUnauthorizedError,
    403: APIForbiddenError,
    404: APINotFoundError,
    405: APIMethodNotAllowedError,
    409: APIConflictError,
    422: APIInvalidError,
    429: APIThrottledError,
    500: APIInternalServerError,
    503: APIServiceUnavailableError,
}


def classify(status: int) -> type[APIError]:
    return (
        HTTP_STATUS_ERRORS[status] if status in HTTP_STATUS_ERRORS else
        APIServerError if 500 <= status <= 599 else
        APIClientError if 400 <= status <= 499 else
        APIError
    )


def make_error(
        status: int,
        data: Any,
        *,
        method: str | None = None,
        path: str | None = None,
        reason: str | None = None,
) -> APIError:
    """
    Build (but do not raise) the specialised error for a failed response.

    The data are the decoded body of the response, if it was decodable:
    a ``Status`` document is kept as the error's payload; any other content
    is only mentioned in the error's text, never exposed as a payload
    (who knows which sensitive information can be dumped there).
    """
    cls = classify(status)
    if isinstance(data, collections.abc.Mapping) and data.get('kind') == 'Status':
        return cls(cast(RawStatus, data), status=status, method=method, path=path, reason=reason)
    elif data:
        text = data if isinstance(data, str) else repr(data)
        return cls(None, status=status, method=method, path=path, reason=reason, text=text[:1000])
    else:
        return cls(None, status=status, method=method, path=path, reason=reason)
