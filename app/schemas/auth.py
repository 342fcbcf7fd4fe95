from typing import Optional

from pydantic import BaseModel


# ======================
# TOKEN SCHEMAS
# ======================

class Token(BaseModel):
    access_token: str
    token_type: str
    # Canonical runtime roles are "requester", "provider" and "operator".
    role: str


class TokenData(BaseModel):
    user_id: Optional[int] = None
    role: Optional[str] = None
