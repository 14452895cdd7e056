"""Endpoint reconciliation core.

Everything in this package is free of cluster and network access: slices come
in as plain value objects, endpoint actions go out as plain value objects.
"""
