import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, FrozenSet, Iterable, Optional

from jose import JWTError, jwt

from ledger_api.core.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    """Authenticated caller, built from verified token claims."""

    user_id: str
    organization_id: Optional[str]
    roles: FrozenSet[str] = field(default_factory=frozenset)
    is_super_admin: bool = False

    def has_any_role(self, roles: Iterable[str]) -> bool:
        return self.is_super_admin or bool(self.roles.intersection(roles))


def create_access_token(
    settings: Settings,
    subject: str,
    organization_id: Optional[str],
    roles: Iterable[str] = (),
    super_admin: bool = False,
    expires_minutes: int = 60,
) -> str:
    """Sign a token. Tokens are issued by the identity service; this is for tooling and tests."""
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    claims: Dict[str, Any] = {
        "sub": subject,
        "org": organization_id,
        "roles": sorted(roles),
        "super_admin": super_admin,
        "exp": expire,
    }
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Settings) -> Optional[Dict[str, Any]]:
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        logger.info(f"[AUTH] Rejected access token: {e}")
        return None


def principal_from_claims(claims: Dict[str, Any]) -> Optional[Principal]:
    user_id = claims.get("sub")
    if not user_id:
        return None
    roles = claims.get("roles") or []
    if isinstance(roles, str):
        roles = [roles]
    return Principal(
        user_id=str(user_id),
        organization_id=claims.get("org"),
        roles=frozenset(str(role).upper() for role in roles),
        is_super_admin=bool(claims.get("super_admin", False)),
    )
