"""API-layer dependencies: request-scoped wiring (UoW, current user)."""

from sendly.api.dependencies.current_user import get_current_user
from sendly.api.dependencies.unit_of_work import UnitOfWork, get_uow

__all__ = ["UnitOfWork", "get_current_user", "get_uow"]
