"""
Resource documents: arbitrarily nested JSON-like bodies of API objects.

The documents are treated as opaque structured values, except where
the declarative patching must reason about their structure: the recorded
last-applied configuration in the annotations, and the deep merges.

The fields are accessed either as the usual mapping keys (the top level),
or by the dotted paths via :meth:`Resource.get_field` & co.

.. seealso::
    The way ``kubectl apply`` stores the applied state and calculates patches:
    https://kubernetes.io/docs/concepts/overview/object-management-kubectl/declarative-config/
"""
import collections.abc
import copy
import functools
import hashlib
import json
import os
from collections.abc import Iterator, Mapping, MutableMapping
from typing import Any, TypeVar

import yaml

from kubewire._cogs.structs import dicts, patches

LAST_APPLIED_ANNOTATION = 'kubectl.kubernetes.io/last-applied-configuration'

_T = TypeVar('_T')


def canonical_json(obj: Any) -> str:
    """ The deterministic serialization used for comparisons and checksums. """
    return json.dumps(obj, sort_keys=True, separators=(',', ':'), ensure_ascii=False,
                      default=_jsonable)


def normalized(obj: Any) -> Any:
    """
    Convert the values to what they would be after a transfer over the wire.

    E.g., the enums or other non-JSON-native values become strings,
    the tuples become lists, the mapping-like objects become dicts.
    """
    return json.loads(json.dumps(obj, default=_jsonable))


def _jsonable(obj: Any) -> Any:
    if isinstance(obj, collections.abc.Mapping):
        return dict(obj)
    return str(obj)


@functools.total_ordering
class Resource(MutableMapping[str, Any]):
    """
    A mutable document of an API object with its content-based identity.

    Two documents are equal if their content is equal, regardless of how
    they were constructed. The ordering is the ordering of their canonical
    serializations: arbitrary, but stable and consistent with the equality.
    """
    _data: dict[str, Any]

    def __init__(
            self,
            __src: Mapping[str, Any] | None = None,
            **kwargs: Any,
    ) -> None:
        super().__init__()
        self._data = copy.deepcopy(dict(__src or {}))
        self._data.update(copy.deepcopy(kwargs))
        self._checksum: str | None = None

    @classmethod
    def from_json(cls, data: str | bytes) -> "Resource":
        return cls(json.loads(data))

    @classmethod
    def from_yaml(cls, data: str) -> list["Resource"]:
        """ Parse all documents of a (possibly multi-document) YAML stream. """
        return [cls(doc) for doc in yaml.safe_load_all(data) if doc is not None]

    @classmethod
    def from_file(cls, path: str) -> "Resource":
        with open(path, encoding='utf-8') as f:
            return cls(yaml.safe_load(f.read()) or {})

    @classmethod
    def from_files(cls, path: str) -> list["Resource"]:
        """
        Read all documents from a file, or from all YAML files in a directory.

        The directories are scanned recursively, in the sorted order of names.
        """
        if os.path.isdir(path):
            result: list[Resource] = []
            for name in sorted(os.listdir(path)):
                subpath = os.path.join(path, name)
                if os.path.isdir(subpath) or name.endswith(('.yml', '.yaml')):
                    result.extend(cls.from_files(subpath))
            return result
        else:
            with open(path, encoding='utf-8') as f:
                return cls.from_yaml(f.read())

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self._data!r})'

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._data[key] = value
        self.invalidate()

    def __delitem__(self, key: str) -> None:
        del self._data[key]
        self.invalidate()

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Resource):
            return canonical_json(self._data) == canonical_json(other._data)
        elif isinstance(other, collections.abc.Mapping):
            return canonical_json(self._data) == canonical_json(normalized(other))
        else:
            return NotImplemented

    def __lt__(self, other: object) -> bool:
        if isinstance(other, Resource):
            return canonical_json(self._data) < canonical_json(other._data)
        else:
            return NotImplemented

    __hash__ = None  # type: ignore[assignment]  # mutable

    @property
    def metadata(self) -> dicts.MappingView[str, Any]:
        return dicts.MappingView(self._data, 'metadata')

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)

    def to_json(self, **kwargs: Any) -> str:
        return json.dumps(self._data, **kwargs)

    def get_field(self, field: dicts.FieldSpec, default: _T | dicts._UNSET = dicts._UNSET.token) -> Any | _T:
        return dicts.resolve(self._data, field, default)

    def set_field(self, field: dicts.FieldSpec, value: Any) -> None:
        dicts.ensure(self._data, field, value)
        self.invalidate()

    def remove_field(self, field: dicts.FieldSpec) -> None:
        dicts.remove(self._data, field)
        self.invalidate()

    def invalidate(self) -> None:
        """ Forget the cached checksum; needed after in-place edits of nested values. """
        self._checksum = None

    @property
    def checksum(self) -> str:
        if self._checksum is None:
            encoded = canonical_json(self._data).encode('utf-8')
            self._checksum = hashlib.md5(encoded, usedforsecurity=False).hexdigest()
        return self._checksum

    def merge(self, other: Mapping[str, Any]) -> "Resource":
        """
        Deep-merge the fields into a new document. This document is not modified.

        The lists are overwritten as a whole, not merged item by item.
        The explicit ``None`` values overwrite the fields (i.e. clear them).
        """
        attrs = other._data if isinstance(other, Resource) else other
        return self.__class__(dicts.merge(self._data, attrs))

    def current_config(self, annotation: str = LAST_APPLIED_ANNOTATION) -> dict[str, Any]:
        """
        Get the last applied configuration as stored in the annotation.

        An empty dict is returned if the annotation is absent, or if it is not
        a JSON object (e.g. ``null``). The empty ``metadata.namespace`` is removed,
        as some clients put it there for cluster-scoped objects, and it would
        produce the diffs from nowhere.
        """
        encoded = self.get_field(('metadata', 'annotations', annotation), None)
        if not encoded:
            return {}

        config = json.loads(encoded)
        if not isinstance(config, dict):
            return {}
        if not dicts.resolve(config, 'metadata.namespace', None):
            metadata = config.get('metadata')
            if isinstance(metadata, collections.abc.MutableMapping):
                metadata.pop('namespace', None)
        return config

    def can_patch(self, annotation: str = LAST_APPLIED_ANNOTATION) -> bool:
        return bool(self.get_field(('metadata', 'annotations', annotation), None))

    def diff(
            self,
            attrs: Mapping[str, Any],
            annotation: str = LAST_APPLIED_ANNOTATION,
    ) -> patches.JSONPatch:
        """
        Calculate the JSON patch from the last applied configuration to the new one.
        """
        return patches.make_json_patch(self.current_config(annotation), normalized(attrs))
