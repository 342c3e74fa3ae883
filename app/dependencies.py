from fastapi import Header

from app.database import async_session
from app.store import EntityStore

# One store per process; it holds no per-request state.
_store = EntityStore(async_session)


def get_store() -> EntityStore:
    """
    FastAPI dependency returning the entity store.

    Tests override this with a store bound to their own session factory::

        app.dependency_overrides[get_store] = lambda: test_store
    """
    return _store


def get_current_user_id(x_user_id: int = Header(..., description="Authenticated user id.")) -> int:
    """
    Identity of the caller.

    Authentication happens upstream; whatever sits in front of this service
    verifies the credentials and forwards the user id in ``X-User-Id``.  It is
    trusted as-is here.
    """
    return x_user_id
