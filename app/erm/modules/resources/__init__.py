"""
Resource inventory.

Resources carry a property schema (list of property definitions) that is
validated on write and locked once the first item exists. Items store their
values in a JSON property bag; a handful of legacy flat columns are kept in
sync for older consumers (see compat.py).
"""
