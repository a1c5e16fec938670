# Overview: Service-layer operations for permissions and security events.

"""
Permission Checking and Security Event Logging

Role-based access control: a user's permissions are the union of the
permissions of their roles. Denials are written to security_events;
grants are not logged.

Fail closed: no role, no permission.
"""

from ..extensions import db
from ..models import UserRole, Role, RolePermission, Permission, SecurityEvent
from ..permissions import PERMISSION_DEFINITIONS, DEFAULT_ROLE_PERMISSIONS
from brecho.time_utils import utcnow


class PermissionDeniedError(Exception):
    """Raised when user lacks required permission."""
    pass


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    shop_id: int | None = None,
) -> SecurityEvent:
    """
    Append a security event (PERMISSION_DENIED, LOGIN_FAILED,
    PASSWORD_CHANGED, LOGOUT, ...).

    Commits immediately so the event survives a rollback of the request.
    """
    event = SecurityEvent(
        user_id=user_id,
        shop_id=shop_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow()
    )

    db.session.add(event)
    db.session.commit()

    return event


def get_user_permissions(user_id: int) -> set[str]:
    """Permission codes granted to a user through their roles."""
    rows = (
        db.session.query(Permission.code)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .join(UserRole, UserRole.role_id == RolePermission.role_id)
        .filter(UserRole.user_id == user_id)
        .all()
    )
    return {code for (code,) in rows}


def user_has_permission(user_id: int, permission_code: str) -> bool:
    return permission_code in get_user_permissions(user_id)


def require_permission(
    user_id: int,
    permission_code: str,
    resource: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    shop_id: int | None = None,
) -> None:
    """
    Raise PermissionDeniedError unless the user holds permission_code.

    Denials are logged to security_events with the shop context.
    """
    if user_has_permission(user_id, permission_code):
        return

    log_security_event(
        user_id=user_id,
        event_type="PERMISSION_DENIED",
        success=False,
        resource=resource,
        action=permission_code,
        reason=f"Missing permission: {permission_code}",
        ip_address=ip_address,
        user_agent=user_agent,
        shop_id=shop_id,
    )
    raise PermissionDeniedError(f"Permission denied: {permission_code}")


def get_user_role_names(user_id: int) -> list[str]:
    rows = (
        db.session.query(Role.name)
        .join(UserRole, UserRole.role_id == Role.id)
        .filter(UserRole.user_id == user_id)
        .order_by(Role.name)
        .all()
    )
    return [name for (name,) in rows]


def initialize_permissions() -> int:
    """
    Make sure every code in PERMISSION_DEFINITIONS has a Permission row.

    Idempotent. Flushes only; the caller commits. Returns the number created.
    """
    existing = {code for (code,) in db.session.query(Permission.code).all()}
    created_count = 0

    for code, name, description, category in PERMISSION_DEFINITIONS:
        if code in existing:
            continue
        db.session.add(Permission(
            code=code,
            name=name,
            description=description,
            category=category
        ))
        created_count += 1

    db.session.flush()
    return created_count


def assign_default_role_permissions(shop_id: int | None = None) -> int:
    """
    Link roles to their DEFAULT_ROLE_PERMISSIONS.

    Applies to one shop's roles, or to every shop when shop_id is None.
    Idempotent. Flushes only; the caller commits.
    """
    permissions = {p.code: p for p in db.session.query(Permission).all()}
    created_count = 0

    for role_name, permission_codes in DEFAULT_ROLE_PERMISSIONS.items():
        role_query = db.session.query(Role).filter_by(name=role_name)
        if shop_id is not None:
            role_query = role_query.filter_by(shop_id=shop_id)

        for role in role_query.all():
            granted = {
                rp.permission_id
                for rp in db.session.query(RolePermission).filter_by(role_id=role.id).all()
            }
            for permission_code in permission_codes:
                permission = permissions.get(permission_code)
                if not permission or permission.id in granted:
                    continue
                db.session.add(RolePermission(role_id=role.id, permission_id=permission.id))
                created_count += 1

    db.session.flush()
    return created_count
