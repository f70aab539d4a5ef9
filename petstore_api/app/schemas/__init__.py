"""
Pydantic schema definitions for API payloads.

Pets and users are open JSON objects: the schemas describe the fields
the Petstore API documents, but unknown fields are accepted and stored
unchanged.  Only ``id`` and the indexed fields are interpreted by the
storage layer.
"""
