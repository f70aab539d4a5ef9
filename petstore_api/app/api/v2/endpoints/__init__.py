"""
Endpoint subpackage for API v2.

Each module defines an APIRouter for one collection (pets, users).  The
routers are aggregated in ``router.py`` at the package level.
"""
