"""
Some basic dicts and field-in-a-dict manipulation helpers.
"""
import collections.abc
import copy
import enum
from collections.abc import Iterator, Mapping, MutableMapping
from typing import Any, Generic, TypeVar

FieldPath = tuple[str | int, ...]
FieldSpec = None | str | FieldPath | list[str | int]

_T = TypeVar('_T')
_K = TypeVar('_K')
_V = TypeVar('_V')


class _UNSET(enum.Enum):
    token = enum.auto()


def parse_field(
        field: FieldSpec,
) -> FieldPath:
    """
    Convert any field into a tuple of nested sub-fields.

    Supported notations:

    * ``None`` (for root of a dict).
    * ``"field.subfield"``
    * ``("field", "subfield")``
    * ``["field", "subfield"]``
    """
    if field is None:
        return tuple()
    elif isinstance(field, str):
        return tuple(field.split('.'))
    elif isinstance(field, (list, tuple)):
        return tuple(field)
    else:
        raise ValueError(f"Field must be either a str, or a list/tuple. Got {field!r}")


def _is_sequence(value: Any) -> bool:
    return (isinstance(value, collections.abc.Sequence) and
            not isinstance(value, (str, bytes, bytearray)))


def _index(key: str | int) -> int:
    if isinstance(key, int):
        return key
    elif key.isdigit():
        return int(key)
    else:
        raise KeyError(key)


def resolve(
        d: Mapping[Any, Any] | None,
        field: FieldSpec,
        default: _T | _UNSET = _UNSET.token,
) -> Any | _T:
    """
    Retrieve a nested sub-field from a dict.

    Sequences on the way are indexed by the integer keys (or digit strings):
    e.g. ``"spec.containers.0.image"``.

    If ``default`` is provided, then all non-existent and non-container values
    are assumed to be empty containers, and ``default`` is returned.

    Otherwise (with no default), attempts to get the inexistent keys will
    raise either a ``TypeError`` or ``KeyError``:

    * ``KeyError`` for actual absence of keys while the structures are correct.
    * ``TypeError`` for attempting to get a key for a non-container:
      e.g. ``None['key']``, ``"string"['key']``, ``123['key']``, etc.
    """
    path = parse_field(field)
    try:
        result: Any = d
        for key in path:
            if isinstance(result, collections.abc.Mapping):
                result = result[key]
            elif _is_sequence(result):
                try:
                    result = result[_index(key)]
                except IndexError:
                    raise KeyError(key) from None
            elif not isinstance(default, _UNSET):
                return default
            else:
                raise TypeError(f"The structure is not a container with field {key!r}: {result!r}")
        return result
    except KeyError:
        if not isinstance(default, _UNSET):
            return default
        raise


def ensure(
        d: MutableMapping[Any, Any],
        field: FieldSpec,
        value: Any,
) -> None:
    """
    Force-set a nested sub-field in a dict.

    If some levels of parents are missing, they are created as empty dicts
    (this what makes it "ensuring", not just "setting"). Existing sequences
    are indexed, but never created or extended.
    """
    result: Any = d
    path = parse_field(field)
    if not path:
        raise ValueError("Setting a root of a dict is impossible. Provide the specific fields.")
    for key in path[:-1]:
        if _is_sequence(result):
            result = result[_index(key)]
        else:
            try:
                result = result[key]
            except KeyError:
                result = result.setdefault(key, {})
    if _is_sequence(result):
        result[_index(path[-1])] = value
    else:
        result[path[-1]] = value


def remove(
        d: MutableMapping[Any, Any],
        field: FieldSpec,
) -> None:
    """
    Remove a nested sub-field from a dict, and all empty parents.

    All intermediate parents that become empty after the removal are also
    removed, making the whole original dict cleaner. For single-field removal,
    use a built-in ``del d[key]`` operation.

    If the target key is absent already, or any of the intermediate parents
    is absent (which implies that the target key is also absent), no error
    is raised, since the goal of deletion is achieved.
    """
    path = parse_field(field)
    if not path:
        raise ValueError("Removing a root of a dict is impossible. Provide a specific field.")

    elif len(path) == 1:
        try:
            del d[path[0]]
        except KeyError:
            pass

    else:
        try:
            # Recursion is the easiest way to implement it, assuming the bodies/patches are shallow.
            remove(d[path[0]], path[1:])
        except (KeyError, TypeError):
            pass
        else:
            # Clean the parent dict if it has become empty due to deletion of the only sub-key.
            # Upper parents will be handled by upper recursion functions.
            if d[path[0]] == {}:  # but not None, and not False, etc.
                del d[path[0]]


def merge(
        base: Mapping[Any, Any],
        other: Mapping[Any, Any],
) -> dict[Any, Any]:
    """
    Deep-merge two dicts into a new one; the sources are not modified.

    Only the mappings are merged recursively. All other values, including
    the sequences, overwrite the base's values as a whole. An explicit
    ``None`` is a value too: it overwrites the base's value instead of
    being ignored as an absent one.
    """
    result = copy.deepcopy(dict(base))
    for key, value in other.items():
        current = result.get(key)
        if isinstance(value, collections.abc.Mapping) and isinstance(current, collections.abc.Mapping):
            result[key] = merge(current, value)
        else:
            result[key] = copy.deepcopy(value)
    return result


class MappingView(Mapping[_K, _V], Generic[_K, _V]):
    """
    A lazy resolver for the "on-demand" dict keys.

    This is needed to have ``metadata``, ``spec``, and other fields
    to be *assumed* as dicts, even if they are actually not present.
    And to prevent their implicit creation with ``.setdefault('spec', {})``,
    which produces unwanted side-effects (actually adds this field).

    >>> body = {}
    >>> spec = MappingView(body, 'spec')
    >>> spec.get('field', 'default')
    ... 'default'
    >>> body['spec'] = {'field': 'value'}
    >>> spec.get('field', 'default')
    ... 'value'
    """
    _src: Mapping[_K, _V]

    def __init__(self, __src: Mapping[Any, Any], __path: FieldSpec = None) -> None:
        super().__init__()
        self._src = __src
        self._path = parse_field(__path)

    def __repr__(self) -> str:
        return repr(dict(self))

    def __len__(self) -> int:
        return len(resolve(self._src, self._path, {}))

    def __iter__(self) -> Iterator[Any]:
        return iter(resolve(self._src, self._path, {}))

    def __getitem__(self, item: _K) -> _V:
        return resolve(self._src, self._path + (item,))  # type: ignore[operator]
