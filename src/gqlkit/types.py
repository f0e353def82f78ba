"""
Built-in GraphQL types, loaded on import
"""

from typing import Any

import strawberry

from .loader import load
from .scalars import Date


@strawberry.type
class User:
    """User type for GraphQL API."""

    id: strawberry.ID
    username: str | None = None
    email: str | None = None
    roles: list[str] = strawberry.field(default_factory=list)
    created_at: Date | None = None

    @classmethod
    def from_context(cls, data: dict[str, Any]) -> "User":
        """Build from the user dict placed in the request context."""
        return cls(
            id=strawberry.ID(str(data["id"])),
            username=data.get("username"),
            email=data.get("email"),
            roles=list(data.get("roles") or []),
            created_at=data.get("created_at"),
        )


@strawberry.type
class AccountsQuery:
    @strawberry.field
    def me(self, info: strawberry.Info) -> User | None:
        """Get the current authenticated user."""
        user = info.context.get("user")
        return User.from_context(user) if user else None


load(query=AccountsQuery, types=[User])
