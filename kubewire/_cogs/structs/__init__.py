"""
All the structures for the resource documents and their manipulation.

Grouped by the purpose: the raw dict helpers, the field-level diffs,
the JSON-patches built from them, and the documents that use all of them.

All the functions are purely data-manipulative and computational.
No I/O happens here: everything is either pure or mutates the given objects.
"""
