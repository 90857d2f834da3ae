from pydantic import BaseModel, Field
from typing import Any, Dict, Set


class Actor(BaseModel):
    """The authenticated user behind an upload request."""
    user_id: str
    capabilities: Set[str] = Field(default_factory=set)

    def can(self, capability: str) -> bool:
        return capability in self.capabilities

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Actor":
        capabilities = set(payload.get("capabilities") or [])
        scope = payload.get("scope")
        if isinstance(scope, str):
            capabilities.update(scope.split())
        return cls(user_id=str(payload["sub"]), capabilities=capabilities)


class NonceClaims(BaseModel):
    sub: str
    action: str
    iat: int
    exp: int


class NonceResponse(BaseModel):
    success: bool = True
    data: str
