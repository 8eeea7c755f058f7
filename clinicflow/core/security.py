from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import ValidationError as PydanticValidationError

from clinicflow.config.config import settings
from clinicflow.core.utils import logger
from clinicflow.schemas.auth_schemas import Actor, ActorRole


SECRET_KEY = settings.SECRET_KEY
ALGORITHM = settings.ALGORITHM


security = HTTPBearer(
    scheme_name="Bearer Token", description="Identity provider JWT", auto_error=True
)


def create_access_token(
    user_id: str,
    role: ActorRole,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Issue an access token carrying the actor id and role."""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload = {
        "sub": user_id,
        "role": ActorRole(role).value,
        "type": "access",
        "exp": expire,
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def decode_actor(token: str) -> Actor:
    """
    Decode a bearer token into an Actor.

    Raises:
        HTTPException: 401 if the token is expired, malformed or incomplete
    """
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])

        if payload.get("type") != "access":
            raise ValueError("Invalid token type")

        return Actor(user_id=payload.get("sub") or "", role=payload.get("role"))

    except ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except (JWTError, ValueError, PydanticValidationError) as e:
        logger.log_warning({"event_type": "invalid_auth_credentials", "error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Security(security),
) -> Actor:
    """FastAPI dependency resolving the actor of the current request."""
    return decode_actor(credentials.credentials)
