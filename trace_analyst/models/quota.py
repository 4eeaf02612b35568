"""
Quota check result contract.
"""
from typing import Optional
from pydantic import BaseModel

# Sentinel limit for teams that are never capped
UNLIMITED = -1


class QuotaCheckResult(BaseModel):
    allowed: bool
    limit: int  # -1 = unlimited
    used: int
    message: Optional[str] = None

    @property
    def unlimited(self) -> bool:
        return self.limit == UNLIMITED

    @property
    def remaining(self) -> Optional[int]:
        """Analyses left this month after the one being requested, or None when unlimited."""
        if self.unlimited:
            return None
        return max(self.limit - self.used - 1, 0)
