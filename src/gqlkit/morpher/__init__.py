"""Client-facing CRUD operations generated from database collections."""

from .exposure import ExposeConfig, ExposeError, NotAuthorizedError, expose

__all__ = ["ExposeConfig", "ExposeError", "NotAuthorizedError", "expose"]
