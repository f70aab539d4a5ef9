"""
Application package initializer.

The application is organised into layers: versioned routers in
``api/<version>/endpoints``, services per collection, and the storage
package that emulates documents and secondary indexes on Redis.
"""

from .main import app  # noqa: F401
