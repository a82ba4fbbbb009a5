"""Business operations invoked by the API routers.

Each pipeline takes an AsyncSession, owns its commit/rollback and raises its
own exception type on failure so the API layer can map it to a response.
"""
