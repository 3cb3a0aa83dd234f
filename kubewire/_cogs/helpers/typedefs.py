"""
Rudimentary type [re-]definitions for cross-versioned Python & mypy.

Some stdlib types are generics in the type-sheds of mypy, but not at runtime
in all supported versions of Python (e.g. ``logging.LoggerAdapter``).
This module defines them in a most suitable and reusable way.
"""
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    LoggerAdapter = logging.LoggerAdapter[Any]
else:
    LoggerAdapter = logging.LoggerAdapter

# As publicly exposed: we only promise that it is based on one of the built-in loggable classes.
Logger = Union[logging.Logger, LoggerAdapter]

# A streaming callback is called per chunk; it can be either sync or async.
ChunkCallback = Callable[[bytes], Union[None, Awaitable[None]]]
