"""
Top-level package for the Petstore API.

All functionality lives in submodules under ``app``: the HTTP layer in
``app.api``, business rules in ``app.services`` and the Redis document
store in ``app.storage``.
"""

__all__ = []
