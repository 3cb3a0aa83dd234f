"""
All the functions to calculate the diffs of the dicts.

Unlike the usual dict comparison, the absence of a key and the key with
``None`` are distinct states here: a ``null`` in JSON is a meaningful value
(e.g. an instruction to clear the field), not an absence of the field.
The absence is represented by the :data:`ABSENT` marker in the diff items.
"""
import collections.abc
import enum
from collections.abc import Iterable, Iterator, Sequence
from typing import Any, NamedTuple, overload

from kubewire._cogs.structs import dicts


class _Absent(enum.Enum):
    token = enum.auto()

    def __repr__(self) -> str:
        return 'ABSENT'


ABSENT = _Absent.token


class DiffOperation(str, enum.Enum):
    ADD = 'add'
    CHANGE = 'change'
    REMOVE = 'remove'

    def __str__(self) -> str:
        return str(self.value)

    def __repr__(self) -> str:
        return repr(self.value)


class DiffItem(NamedTuple):
    operation: DiffOperation
    field: dicts.FieldPath
    old: Any
    new: Any

    def __repr__(self) -> str:
        return repr(tuple(self))

    def __eq__(self, other: object) -> bool:
        if isinstance(other, collections.abc.Sequence):
            return tuple(self) == tuple(other)
        else:
            return NotImplemented

    def __ne__(self, other: object) -> bool:
        if isinstance(other, collections.abc.Sequence):
            return tuple(self) != tuple(other)
        else:
            return NotImplemented

    @property
    def op(self) -> DiffOperation:
        return self.operation


class Diff(Sequence[DiffItem]):

    def __init__(self, __items: Iterable[DiffItem]):
        super().__init__()
        self._items = tuple(DiffItem(*item) for item in __items)

    def __repr__(self) -> str:
        return repr(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[DiffItem]:
        return iter(self._items)

    @overload
    def __getitem__(self, i: int) -> DiffItem: ...

    @overload
    def __getitem__(self, s: slice) -> Sequence[DiffItem]: ...

    def __getitem__(self, item: int | slice) -> DiffItem | Sequence[DiffItem]:
        return self._items[item]

    def __eq__(self, other: object) -> bool:
        if isinstance(other, collections.abc.Sequence):
            return tuple(self) == tuple(other)
        else:
            return NotImplemented

    def __ne__(self, other: object) -> bool:
        if isinstance(other, collections.abc.Sequence):
            return tuple(self) != tuple(other)
        else:
            return NotImplemented


def _is_sequence(value: Any) -> bool:
    return (isinstance(value, collections.abc.Sequence) and
            not isinstance(value, (str, bytes, bytearray)))


def _same(a: Any, b: Any) -> bool:
    """
    Compare two values as JSON values, at all levels of nesting.

    In Python, ``1 == 1.0 == True``, but these are different values in JSON,
    also when they are nested in lists: ``[1]`` and ``[True]`` differ.
    """
    if isinstance(a, collections.abc.Mapping) and isinstance(b, collections.abc.Mapping):
        return a.keys() == b.keys() and all(_same(a[key], b[key]) for key in a)
    elif _is_sequence(a) and _is_sequence(b):
        return len(a) == len(b) and all(_same(x, y) for x, y in zip(a, b))
    elif type(a) is not type(b) and (isinstance(a, bool) or isinstance(b, bool)):
        return False
    else:
        return bool(a == b)


def diff_iter(
        a: Any,
        b: Any,
        path: dicts.FieldPath = (),
) -> Iterator[DiffItem]:
    """
    Calculate the diff between two dicts.

    Yields the tuple of form ``(op, path, old, new)``,
    where ``op`` is either ``"add"``/``"change"``/``"remove"``,
    ``path`` is a tuple with the field names (empty tuple means root),
    and the ``old`` & ``new`` values (:data:`ABSENT` for addition/removal).

    The keys are yielded in a stable order: first, the keys of the old dict
    in their order (changed or removed), then the new keys in their order.

    List values are treated as a whole, and not recursed into.
    Therefore, an addition/removal of a list item is considered
    as a change of the whole value.
    """
    if a is ABSENT and b is ABSENT:
        pass
    elif a is ABSENT:
        yield DiffItem(DiffOperation.ADD, path, a, b)
    elif b is ABSENT:
        yield DiffItem(DiffOperation.REMOVE, path, a, b)
    elif isinstance(a, collections.abc.Mapping) and isinstance(b, collections.abc.Mapping):
        for key in a:
            yield from diff_iter(a[key], b.get(key, ABSENT), path=path+(key,))
        for key in b:
            if key not in a:
                yield from diff_iter(ABSENT, b[key], path=path+(key,))
    elif not _same(a, b):
        yield DiffItem(DiffOperation.CHANGE, path, a, b)


def diff(
        a: Any,
        b: Any,
        path: dicts.FieldPath = (),
) -> Diff:
    """
    Same as `diff_iter`, but returns the whole tuple instead of iterator.
    """
    return Diff(diff_iter(a, b, path=path))


EMPTY = diff(ABSENT, ABSENT)
