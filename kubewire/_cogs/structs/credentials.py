"""
Connection-related structures.

A minimally sufficient data structure to bring all the connection options
together in a structured and type-annotated way, regardless of where they
come from: kubeconfig files, the in-cluster service account, or the code.

The options are defined as the information passed to the HTTP protocol
and TCP/SSL connection only, i.e. everything usable in a generic HTTP client,
and nothing more than that:

* TCP server host & port (and the path prefix, if any).
* SSL verification/ignorance flag.
* SSL certificate authority.
* SSL client certificate and its private key (as files or as data).
* HTTP ``Authorization: Basic username:password``.
* HTTP ``Authorization: Bearer token`` (or other schemes: Bearer, Digest, etc).
* URL's default namespace for the cases when this is implied.

.. seealso::
    :mod:`kubewire._cogs.clients.login` and :mod:`kubewire._cogs.clients.auth`.
"""
import dataclasses


class ConfigurationError(Exception):
    """ Raised when the required environment or credential material is missing. """


class LoginError(ConfigurationError):
    """ Raised when the credentials cannot be retrieved from their sources. """


@dataclasses.dataclass(frozen=True)
class ConnectionInfo:
    """
    A single endpoint with specific credentials and connection flags to use.
    """
    server: str  # e.g. "https://localhost:443" or "https://host/k8s/clusters/c-1"
    ca_path: str | None = None
    ca_data: str | bytes | None = None  # PEM or base64-encoded PEM
    insecure: bool | None = None
    username: str | None = None
    password: str | None = None
    scheme: str | None = None  # RFC-7235/5.1: e.g. Bearer, Basic, Digest, etc.
    token: str | None = None
    certificate_path: str | None = None
    certificate_data: str | bytes | None = None  # PEM or base64-encoded PEM
    private_key_path: str | None = None
    private_key_data: str | bytes | None = None  # PEM or base64-encoded PEM
    default_namespace: str | None = None
