"""
The main kubewire module for all the exported functions & classes.
"""
# isort: skip_file

# Unlike all other places, where we import other modules and refer
# the functions via the modules, this is the library's top-level interface,
# as it is seen by the users. So, we export the individual functions.

from kubewire._cogs.clients.auth import (
    Connection,
)
from kubewire._cogs.clients.codecs import (
    Request,
    JSON,
    JSON_PATCH,
    MERGE_PATCH,
    STRATEGIC_MERGE_PATCH,
)
from kubewire._cogs.clients.errors import (
    APIError,
    APIDecodeError,
    APIClientError,
    APIBadRequestError,
    APIUnauthorizedError,
    APIForbiddenError,
    APINotFoundError,
    APIMethodNotAllowedError,
    APIConflictError,
    APIInvalidError,
    APIThrottledError,
    APIServerError,
    APIInternalServerError,
    APIServiceUnavailableError,
    HTTP_STATUS_ERRORS,
)
from kubewire._cogs.clients.login import (
    login_with_kubeconfig,
    login_with_service_account,
)
from kubewire._cogs.clients.transport import (
    Transport,
)
from kubewire._cogs.configs.configuration import (
    ClientSettings,
    NetworkingSettings,
    CompatibilitySettings,
)
from kubewire._cogs.helpers.loggers import (
    LogFormat,
    configure,
)
from kubewire._cogs.helpers.typedefs import (
    Logger,
)
from kubewire._cogs.helpers.versions import (
    version as __version__,
)
from kubewire._cogs.structs.credentials import (
    ConnectionInfo,
    ConfigurationError,
    LoginError,
)
from kubewire._cogs.structs.diffs import (
    Diff,
    DiffItem,
    DiffOperation,
    diff,
)
from kubewire._cogs.structs.patches import (
    JSONPatch,
    JSONPatchItem,
    make_json_patch,
    apply_json_patch,
)
from kubewire._cogs.structs.resources import (
    Resource,
    LAST_APPLIED_ANNOTATION,
)

__all__ = [
    'Connection', 'Transport', 'Request',
    'JSON', 'JSON_PATCH', 'MERGE_PATCH', 'STRATEGIC_MERGE_PATCH',
    'login_with_kubeconfig', 'login_with_service_account',
    'ConnectionInfo', 'ConfigurationError', 'LoginError',
    'ClientSettings', 'NetworkingSettings', 'CompatibilitySettings',
    'LogFormat', 'configure', 'Logger',
    'Resource', 'LAST_APPLIED_ANNOTATION',
    'Diff', 'DiffItem', 'DiffOperation', 'diff',
    'JSONPatch', 'JSONPatchItem', 'make_json_patch', 'apply_json_patch',
    'APIError', 'APIDecodeError',
    'APIClientError', 'APIServerError',
    'APIBadRequestError', 'APIUnauthorizedError', 'APIForbiddenError', 'APINotFoundError',
    'APIMethodNotAllowedError', 'APIConflictError', 'APIInvalidError', 'APIThrottledError',
    'APIInternalServerError', 'APIServiceUnavailableError',
    'HTTP_STATUS_ERRORS',
]
