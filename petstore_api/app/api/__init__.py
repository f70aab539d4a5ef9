"""
API package containing versioned routes.

Routes are grouped by API version.  ``v2`` mirrors the Swagger
Petstore v2 paths (``/v2/pet``, ``/v2/user``) served by the earlier
deployment, so existing clients keep working unchanged.
"""
