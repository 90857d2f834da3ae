from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt
from jwt import InvalidTokenError
from dropzone_upload.core.config import settings
from dropzone_upload.core.exceptions import Forbidden, Unauthorized
from dropzone_upload.schemas.token import Actor, NonceClaims
from typing import Optional
import logging
import time

logger = logging.getLogger(__name__)

NONCE_ACTION = "dropzone_upload"
NONCE_ALGORITHM = "HS256"

# Failures are answered by the upload service in its own envelope
security = HTTPBearer(auto_error=False)


def get_optional_actor(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> Optional[Actor]:
    """
    Resolve the actor from the main service's bearer JWT.
    Returns None when no valid token is presented.
    """
    if credentials is None:
        return None
    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.MAIN_SERVICE_JWT_PUBLIC_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.EXPECTED_JWT_AUDIENCE,
            issuer=settings.EXPECTED_JWT_ISSUER,
        )
    except InvalidTokenError as e:
        logger.warning(f"Rejected bearer token: {e}")
        return None
    if not payload.get("sub"):
        logger.warning("Rejected bearer token: missing sub.")
        return None
    return Actor.from_payload(payload)


def create_nonce(actor_id: str, ttl_seconds: Optional[int] = None) -> str:
    now = int(time.time())
    claims = NonceClaims(
        sub=actor_id,
        action=NONCE_ACTION,
        iat=now,
        exp=now + (ttl_seconds if ttl_seconds is not None else settings.NONCE_TTL_SECONDS),
    )
    return jwt.encode(claims.model_dump(), settings.NONCE_SECRET_KEY, algorithm=NONCE_ALGORITHM)


def verify_nonce(nonce: Optional[str], actor_id: Optional[str]) -> bool:
    if not nonce or actor_id is None:
        return False
    try:
        payload = jwt.decode(
            nonce.strip(),
            settings.NONCE_SECRET_KEY,
            algorithms=[NONCE_ALGORITHM],
            options={"require": ["exp", "sub"]},
        )
    except InvalidTokenError:
        return False
    return payload.get("action") == NONCE_ACTION and payload.get("sub") == actor_id


class AuthorizationGate:
    """Checks the anti-forgery token and the actor's capability. No side effects."""

    def __init__(self, capability: str):
        self.capability = capability

    def authorize(self, nonce: Optional[str], actor: Optional[Actor]) -> Actor:
        if actor is None:
            raise Forbidden()
        if not verify_nonce(nonce, actor.user_id):
            raise Unauthorized()
        if not actor.can(self.capability):
            raise Forbidden()
        return actor
