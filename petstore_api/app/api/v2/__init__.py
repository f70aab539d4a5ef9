"""
Version 2 of the API.

Bundles the pet and user endpoints.  Breaking changes belong in a new
version subpackage.
"""
