"""
Detecting the library's own version, and parsing the servers' versions.

The library's version is determined only once at startup when the code is
loaded. It is used for self-identification in the ``User-Agent`` header.

The servers' versions are parsed for the protocol compatibility decisions.
"""
import re

version: str | None = None

try:
    import importlib.metadata
except ImportError:
    pass
else:
    try:
        name, *_ = __name__.split('.')  # usually "kubewire", unless renamed/forked.
        version = importlib.metadata.version(name)
    except Exception:
        pass  # installed from sources without metadata, etc.

# Leading non-digits are ignored: e.g. "v1.20.3-gke.1" is parsed as (1, 20, 3).
_VERSION_RE = re.compile(r'^\D*((?:\d+\.)*\d+)')


def parse_version(text: str) -> tuple[int, ...]:
    """
    Parse a dotted version into a tuple of numbers, suitable for comparisons.

    An unparseable version is an empty tuple, i.e. older than anything else.
    """
    match = _VERSION_RE.match(text or '')
    return tuple(int(part) for part in match.group(1).split('.')) if match else ()
