from typing import Optional
from pydantic import BaseModel


class QuotaStatus(BaseModel):
    key: str
    active: bool
    retryAfterSeconds: int = 0
    lockedUntil: Optional[str] = None
    lastStatus: Optional[int] = None
    reason: Optional[str] = None
