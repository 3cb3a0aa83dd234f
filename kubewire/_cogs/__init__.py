"""
The internal machinery of the client core: independent of the public API.

The modules are grouped by layers: ``structs`` are pure data structures,
``clients`` talk to the API servers, ``configs`` hold the settings,
``helpers`` are the generic utilities for all of them.
"""
