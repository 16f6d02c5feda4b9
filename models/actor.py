from pydantic import BaseModel
from typing import Literal


UserRole = Literal["main_admin", "po_creator", "approval_admin"]


class Actor(BaseModel):
    """The signed-in user a store session acts on behalf of."""
    id: str
    name: str
    role: UserRole = "po_creator"
