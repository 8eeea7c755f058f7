from fastapi import Depends, HTTPException, Request, status

from clinicflow.core.security import get_current_actor
from clinicflow.core.utils import logger
from clinicflow.schemas.auth_schemas import Actor, ActorRole


def require_role(*roles: ActorRole):
    """
    Dependency factory to enforce that the actor holds one of ``roles``.

    Usage:
        actor: Actor = Depends(require_role(ActorRole.DOCTOR, ActorRole.ADMIN))
    """
    allowed = {ActorRole(role) for role in roles}

    async def checker(
        request: Request,
        actor: Actor = Depends(get_current_actor),
    ) -> Actor:
        if actor.role not in allowed:
            logger.log_security_event(
                {
                    "event_type": "unauthorized_role_access_attempt",
                    "user_id": actor.user_id,
                    "user_role": actor.role.value,
                    "required_roles": sorted(role.value for role in allowed),
                    "path": request.url.path,
                    "ip_address": (
                        getattr(request.client, "host", "unknown")
                        if request.client
                        else "unknown"
                    ),
                }
            )

            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=(
                    "Access denied. Requires at least one of these roles: "
                    f"{', '.join(sorted(role.value for role in allowed))}"
                ),
            )

        logger.log_debug(
            {
                "event_type": "access_granted_role",
                "user_id": actor.user_id,
                "role": actor.role.value,
            }
        )
        return actor

    return checker


def require_clinic_staff():
    """Any authenticated front-desk role."""
    return require_role(ActorRole.RECEPTIONIST, ActorRole.DOCTOR, ActorRole.ADMIN)


def require_front_desk():
    """Receptionist or admin: registration, catalog and billing."""
    return require_role(ActorRole.RECEPTIONIST, ActorRole.ADMIN)


def require_doctor():
    """Doctor or admin: clinical actions such as prescribing."""
    return require_role(ActorRole.DOCTOR, ActorRole.ADMIN)
