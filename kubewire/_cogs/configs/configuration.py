"""
All configuration flags, options, settings to fine-tune the client.

All settings are grouped semantically just for convenience
(instead of a flat mega-object with all the values in it).

Some of the settings are flags, some are scalars, some are optional,
some are not (but all of them have reasonable defaults).

The settings are created once and passed to the transport at construction.
There is no global state: different transports can use different settings.
"""
import dataclasses


@dataclasses.dataclass
class NetworkingSettings:

    request_timeout: float | None = 5 * 60  # == aiohttp.client.DEFAULT_TIMEOUT
    """
    A timeout for the whole buffered request-response cycle (in seconds).

    It is not applied to the streaming requests: those are limited
    by the read timeout between the chunks only (see below).
    """

    connect_timeout: float | None = None
    """
    A timeout for establishing the connection to the API server (in seconds).
    """

    stream_read_timeout: float = 60
    """
    How long to wait for the next chunk of a streaming response (in seconds).

    A streaming response ends either when the server closes the connection,
    or when no data arrive for this long. There is no other way to stop it,
    so it must be finite. It can be overridden for each request individually.
    """

    stream_chunk_size: int = 64 * 1024
    """
    The maximum size of a chunk passed to the streaming callbacks (in bytes).
    """


@dataclasses.dataclass
class CompatibilitySettings:

    delete_body_before: str = '1.11'
    """
    The API servers older than this version expect the delete options
    in the request body of ``DELETE`` requests, not in the query parameters.

    The server version is detected once per transport and then cached.
    """


@dataclasses.dataclass
class ClientSettings:
    networking: NetworkingSettings = dataclasses.field(default_factory=NetworkingSettings)
    compatibility: CompatibilitySettings = dataclasses.field(default_factory=CompatibilitySettings)
