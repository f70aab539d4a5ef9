"""
Top-level router for version 2 of the API.

Aggregates the collection routers under a unified prefix.  The static
pet routes (``findByStatus``, ``findByTags``) are declared before
``/pet/{petId}`` inside ``pets.py`` so they are matched first.
"""

from fastapi import APIRouter

from .endpoints import pets, users

router = APIRouter()

router.include_router(pets.router, prefix="/pet", tags=["pet"])
router.include_router(users.router, prefix="/user", tags=["user"])
