"""
All the structures needed for the declarative patching.

Two styles of patches are supported by the API servers and by this library:

* A JSON merge-patch (RFC 7386), i.e. a simple dictionary with field
  overrides. It is built by :func:`kubewire._cogs.structs.dicts.merge`
  or :meth:`Resource.merge` and sent as-is.
* A JSON patch (RFC 6902), i.e. a list of operations. It is calculated
  from the field-level diffs of two documents by :func:`make_json_patch`,
  and can be applied locally by :func:`apply_json_patch`.
"""
import copy
from collections.abc import Iterable, Sequence
from typing import Any

from typing_extensions import Literal, TypedDict

from kubewire._cogs.structs import dicts, diffs

JSONPatchOp = Literal["add", "replace", "remove"]


def _escaped_path(keys: Iterable[str | int]) -> str:
    """Provides an appropriately escaped path for JSON Patches.

    See https://datatracker.ietf.org/doc/html/rfc6901#section-3 for more details.
    """
    return ''.join('/' + str(key).replace('~', '~0').replace('/', '~1') for key in keys)


def _unescaped_path(path: str) -> list[str]:
    if path == '':
        return []
    if not path.startswith('/'):
        raise ValueError(f"A JSON pointer must start with a slash: {path!r}")
    return [key.replace('~1', '/').replace('~0', '~') for key in path[1:].split('/')]


class JSONPatchItem(TypedDict, total=False):
    op: JSONPatchOp
    path: str
    value: Any | None


JSONPatch = list[JSONPatchItem]


def make_json_patch(
        old: Any,
        new: Any,
) -> JSONPatch:
    """
    Calculate a minimal JSON patch to convert the old document into the new one.

    Unchanged sub-trees produce no operations at all. The new keys are added,
    the removed keys are removed, the changed values are replaced as a whole
    (including lists and the values which change their type, e.g. a dict
    that becomes a string). The values in the patch are deep copies,
    so that the patch is not affected by the further changes of the documents.
    """
    result: JSONPatch = []
    for op, field, _, new_value in diffs.diff_iter(old, new):
        path = _escaped_path(field)
        if op == diffs.DiffOperation.ADD:
            result.append(JSONPatchItem(op='add', path=path, value=copy.deepcopy(new_value)))
        elif op == diffs.DiffOperation.REMOVE:
            result.append(JSONPatchItem(op='remove', path=path))
        else:
            result.append(JSONPatchItem(op='replace', path=path, value=copy.deepcopy(new_value)))
    return result


def apply_json_patch(
        doc: Any,
        patch: Sequence[JSONPatchItem],
) -> Any:
    """
    Apply a JSON patch to a copy of the document, and return the result.

    The original document is not modified. Only the operations generated by
    this library are supported (``add``, ``remove``, ``replace``). In lists,
    the keys are indices, and ``-`` means the end of the list for additions.
    """
    result = copy.deepcopy(doc)
    for item in patch:
        op = item['op']
        keys = _unescaped_path(item['path'])
        value = copy.deepcopy(item.get('value'))

        if not keys:
            if op == 'remove':
                raise ValueError("Removing the root of a document is impossible.")
            result = value
            continue

        parent = dicts.resolve(result, keys[:-1])
        key = keys[-1]
        if isinstance(parent, list):
            index = len(parent) if key == '-' and op == 'add' else int(key)
            if op == 'add':
                parent.insert(index, value)
            elif op == 'remove':
                del parent[index]
            elif op == 'replace':
                parent[index] = value
            else:
                raise ValueError(f"Unsupported JSON-patch operation: {op!r}")
        elif isinstance(parent, dict):
            if op == 'add':
                parent[key] = value
            elif op == 'remove':
                del parent[key]
            elif op == 'replace':
                if key not in parent:
                    raise KeyError(f"Cannot replace an absent field: {item['path']!r}")
                parent[key] = value
            else:
                raise ValueError(f"Unsupported JSON-patch operation: {op!r}")
        else:
            raise TypeError(f"Cannot patch a non-container at {item['path']!r}: {parent!r}")
    return result
