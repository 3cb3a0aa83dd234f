"""
Logging of the API exchanges, and the logging setup for the applications.

The transports log every request with its outcome and timing. The logger is
given to a transport at construction (or made by default), so that different
transports can log differently; there are no process-wide verbosity flags.

The log records carry the server they talk to, so that the formatters can
prefix the messages with it (in the text formats) or put it into a separate
field (in the JSON format) when several servers are used at once.
"""
import copy
import enum
import logging
from collections.abc import MutableMapping
from typing import TYPE_CHECKING, Any, TextIO

# Luckily, we do not mock these ones in tests, so we can import them into our namespace.
try:
    # python-json-logger>=3.1.0
    from pythonjsonlogger.core import RESERVED_ATTRS as _pjl_RESERVED_ATTRS
    from pythonjsonlogger.json import JsonFormatter as _pjl_JsonFormatter
except ImportError:
    # python-json-logger<3.1.0
    from pythonjsonlogger.jsonlogger import JsonFormatter as _pjl_JsonFormatter  # type: ignore
    from pythonjsonlogger.jsonlogger import RESERVED_ATTRS as _pjl_RESERVED_ATTRS  # type: ignore

from kubewire._cogs.helpers import typedefs

logger = logging.getLogger('kubewire.transport')

# A key for server references in JSON logs, as seen by the log parsers.
DEFAULT_JSON_REFKEY = 'server'


class LogFormat(enum.Enum):
    """ Log formats, as specified on CLI. """
    PLAIN = '%(message)s'
    FULL = '[%(asctime)s] %(name)-20.20s [%(levelname)-8.8s] %(message)s'
    JSON = '-json-'  # not used for formatting, only for detection


def _prefixed(record: logging.LogRecord) -> logging.LogRecord:
    server = getattr(record, 'k8s_server', None)
    if not server:
        return record
    record = copy.copy(record)  # shallow
    record.msg = f"[{server}] {record.msg}"
    return record


class ServerTextFormatter(logging.Formatter):
    """ A text formatter, which optionally puts the server before the messages. """

    def __init__(self, *args: Any, server_prefix: bool = False, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.server_prefix = server_prefix

    def format(self, record: logging.LogRecord) -> str:
        return super().format(_prefixed(record) if self.server_prefix else record)


class ServerJsonFormatter(_pjl_JsonFormatter):
    """
    A JSON formatter with the server as a separate field (``refkey``).

    The severity is added in the terms of the log collectors (e.g. "warn").
    """

    def __init__(
            self,
            *args: Any,
            refkey: str | None = None,
            server_prefix: bool = False,
            **kwargs: Any,
    ) -> None:
        # Avoid type checking, as the args are not in the parent constructor.
        reserved_attrs = set(kwargs.pop('reserved_attrs', _pjl_RESERVED_ATTRS))
        kwargs |= dict(reserved_attrs=reserved_attrs | {'k8s_server'})
        kwargs.setdefault('timestamp', True)
        super().__init__(*args, **kwargs)
        self.refkey: str = refkey or DEFAULT_JSON_REFKEY
        self.server_prefix = server_prefix

    def format(self, record: logging.LogRecord) -> str:
        return super().format(_prefixed(record) if self.server_prefix else record)

    def add_fields(
            self,
            log_record: dict[str, object],
            record: logging.LogRecord,
            message_dict: dict[str, object],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if hasattr(record, 'k8s_server'):
            log_record[self.refkey] = getattr(record, 'k8s_server')

        if 'severity' not in log_record:
            log_record['severity'] = (
                "debug" if record.levelno <= logging.DEBUG else
                "info" if record.levelno <= logging.INFO else
                "warn" if record.levelno <= logging.WARNING else
                "error" if record.levelno <= logging.ERROR else
                "fatal")


class TransportLogger(typedefs.LoggerAdapter):
    """
    A logger/adapter to carry the server's identity for formatting.

    Constructed once per transport, and used for all its requests.
    """

    def __init__(self, *, server: str, base: logging.Logger | None = None) -> None:
        super().__init__(base if base is not None else logger, dict(k8s_server=server))

    def process(
            self,
            msg: str,
            kwargs: MutableMapping[str, Any],
    ) -> tuple[str, MutableMapping[str, Any]]:
        # Native logging overwrites the message's extra with the adapter's extra.
        # We merge them, so that both message's & adapter's extras are available.
        kwargs["extra"] = dict(self.extra or {}) | kwargs.get('extra', {})
        return msg, kwargs


# Used to identify and remove our own handlers on repeated configuration (e.g. in CLI tests).
if TYPE_CHECKING:
    class _KubewireStreamHandler(logging.StreamHandler[TextIO]):
        pass
else:
    class _KubewireStreamHandler(logging.StreamHandler):
        pass


def configure(
        debug: bool | None = None,
        verbose: bool | None = None,
        quiet: bool | None = None,
        log_format: LogFormat | str = LogFormat.FULL,
        log_prefix: bool | None = False,
        log_refkey: str | None = None,
) -> None:
    """
    Configure the root logger once at startup: the level, the format, the output.

    By default, only the summaries of the requests are logged (INFO). In the
    verbose mode, the request & response bodies of failed requests are also
    logged (DEBUG). In the quiet mode, only the failures are logged (WARNING).
    """
    log_level = 'DEBUG' if debug or verbose else 'WARNING' if quiet else 'INFO'
    formatter = make_formatter(log_format=log_format, log_prefix=log_prefix, log_refkey=log_refkey)
    handler = _KubewireStreamHandler()
    handler.setFormatter(formatter)
    root = logging.getLogger()
    root.handlers[:] = [h for h in root.handlers if not isinstance(h, _KubewireStreamHandler)]
    root.addHandler(handler)
    root.setLevel(log_level)

    # Prevent the low-level logging unless in the debug mode. Keep only our own messages.
    # For no-propagation loggers, add a dummy null handler to prevent printing the messages.
    for name in ['asyncio', 'aiohttp']:
        sublogger = logging.getLogger(name)
        sublogger.propagate = bool(debug)
        if not debug:
            sublogger.handlers[:] = [logging.NullHandler()]


def make_formatter(
        log_format: LogFormat | str = LogFormat.FULL,
        log_prefix: bool | None = False,
        log_refkey: str | None = None,
) -> logging.Formatter:
    prefix = log_prefix if log_prefix is not None else bool(log_format is not LogFormat.JSON)
    match log_format:
        case LogFormat.JSON:
            return ServerJsonFormatter(refkey=log_refkey, server_prefix=prefix)
        case LogFormat():
            return ServerTextFormatter(log_format.value, server_prefix=prefix)
        case str():
            return ServerTextFormatter(log_format, server_prefix=prefix)
        case _:
            raise ValueError(f"Unsupported log format: {log_format!r}")
