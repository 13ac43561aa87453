"""Authenticated caller identity."""

from pydantic import BaseModel, Field

from ..core.config import settings


class CurrentUser(BaseModel):
    """Identity supplied by the auth collaborator; trusted as-is."""

    user_id: str = Field(..., min_length=1, description="Authenticated user ID")
    role: str = Field("customer", description="Caller role")

    @property
    def is_admin(self) -> bool:
        return self.role == settings.admin_role

    def can_access(self, owner_id: str) -> bool:
        """True for the resource owner and for admins."""
        return self.is_admin or self.user_id == owner_id
