from pydantic import BaseModel
from typing import Optional
from enum import Enum

class Role(str, Enum):
    USER = "user"
    COMPANY = "company"
    ADMIN = "admin"

class AuthenticatedPrincipal(BaseModel):
    """Caller identity passed explicitly into every core operation"""
    id: str
    role: Role = Role.USER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def can_access(self, owner_id: str) -> bool:
        return self.is_admin or self.id == owner_id

class TokenData(BaseModel):
    user_id: Optional[str] = None
    role: Role = Role.USER
