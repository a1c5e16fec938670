# Overview: Service-layer operations for auth; shops, users, roles and passwords.

"""
Authentication and account bootstrap.

Every action must be attributable to a user of one shop. Passwords are
hashed with bcrypt (cost factor 12) after a strength check.

Signup (register_shop) creates the whole tenant in one transaction: the
shop, its default roles and their permissions, default payment methods,
the alert configuration and the owner user.
"""

import bcrypt
import re
from ..extensions import db
from ..models import User, Role, UserRole, Shop
from ..permissions import DEFAULT_ROLES
from ..validation import ConflictError, ValidationError, is_valid_email, normalize_document
from . import permission_service
from .payment_method_service import seed_default_payment_methods
from .goal_service import get_alert_config
from brecho.time_utils import utcnow, DEFAULT_TIMEZONE


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class ShopNotFoundError(Exception):
    pass


class UserNotFoundError(Exception):
    pass


class InvalidCredentialsError(Exception):
    """Raised when the current password given for a change does not match."""


def validate_password_strength(password: str) -> None:
    """
    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>_\-+=?;/\\\[\]~`]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt (cost factor 12)."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def _validate_identity(username: str, email: str) -> tuple[str, str]:
    username = (username or "").strip()
    email = (email or "").strip().lower()
    if len(username) < 3:
        raise ValidationError("username must have at least 3 characters")
    if len(username) > 64:
        raise ValidationError("username must have at most 64 characters")
    if not is_valid_email(email):
        raise ValidationError("email is not a valid email address")
    return username, email


def create_default_roles(shop_id: int) -> list[Role]:
    """Create owner/manager/seller for a shop if missing. Flushes only."""
    roles = []
    for name, desc in DEFAULT_ROLES.items():
        role = db.session.query(Role).filter_by(shop_id=shop_id, name=name).first()
        if not role:
            role = Role(shop_id=shop_id, name=name, description=desc)
            db.session.add(role)
        roles.append(role)
    db.session.flush()
    return roles


def assign_role(user_id: int, role_name: str) -> UserRole:
    """Assign one of the user's shop roles. Flushes only."""
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise UserNotFoundError(f"User {user_id} not found")

    role = db.session.query(Role).filter_by(shop_id=user.shop_id, name=role_name).first()
    if not role:
        raise ValidationError(f"Role {role_name} not found")

    existing = db.session.query(UserRole).filter_by(user_id=user_id, role_id=role.id).first()
    if existing:
        return existing

    user_role = UserRole(user_id=user_id, role_id=role.id)
    db.session.add(user_role)
    db.session.flush()
    return user_role


def _add_user(*, shop_id: int, username: str, email: str, password: str) -> User:
    username, email = _validate_identity(username, email)

    existing = db.session.query(User).filter(
        User.shop_id == shop_id,
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise ConflictError("Username or email already exists in this shop")

    user = User(
        shop_id=shop_id,
        username=username,
        email=email,
        password_hash=hash_password(password),
    )
    db.session.add(user)
    db.session.flush()
    return user


def create_user(
    *,
    shop_id: int,
    username: str,
    email: str,
    password: str,
    role: str = "seller",
) -> User:
    """
    Create a user inside an existing shop and give them a role.

    Raises:
        ShopNotFoundError: shop missing or inactive
        ConflictError: username/email taken in this shop
        PasswordValidationError: weak password
    """
    shop = db.session.query(Shop).filter_by(id=shop_id).first()
    if not shop or not shop.is_active:
        raise ShopNotFoundError("Shop not found or inactive")

    if role not in DEFAULT_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(sorted(DEFAULT_ROLES))}")

    try:
        user = _add_user(shop_id=shop_id, username=username, email=email, password=password)
        assign_role(user.id, role)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return user


def register_shop(
    *,
    shop_name: str,
    username: str,
    email: str,
    password: str,
    document: str | None = None,
    timezone: str = DEFAULT_TIMEZONE,
) -> tuple[Shop, User]:
    """
    Sign up a new shop with its owner account.

    All or nothing: a weak password or bad document leaves no shop behind.
    """
    shop_name = (shop_name or "").strip()
    if len(shop_name) < 3:
        raise ValidationError("shop_name must have at least 3 characters")
    if len(shop_name) > 120:
        raise ValidationError("shop_name must have at most 120 characters")

    try:
        digits = normalize_document(document) if document else None
        if digits and db.session.query(Shop).filter_by(document=digits).first():
            raise ConflictError("A shop with this document already exists")

        permission_service.initialize_permissions()

        shop = Shop(name=shop_name, document=digits, timezone=timezone or DEFAULT_TIMEZONE)
        db.session.add(shop)
        db.session.flush()

        create_default_roles(shop.id)
        permission_service.assign_default_role_permissions(shop.id)
        seed_default_payment_methods(shop_id=shop.id)
        get_alert_config(shop_id=shop.id)

        owner = _add_user(shop_id=shop.id, username=username, email=email, password=password)
        assign_role(owner.id, "owner")

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    return shop, owner


def authenticate(identifier: str, password: str, shop_id: int | None = None) -> User | None:
    """
    Check credentials given a username or email.

    Usernames are only unique per shop, so without shop_id every active
    match is tried. Returns the user (and stamps last_login_at) or None.
    """
    identifier = (identifier or "").strip()
    if not identifier or not password:
        return None

    query = db.session.query(User).join(Shop, Shop.id == User.shop_id).filter(
        db.or_(User.username == identifier, User.email == identifier.lower()),
        User.is_active.is_(True),
        Shop.is_active.is_(True),
    )
    if shop_id is not None:
        query = query.filter(User.shop_id == shop_id)

    for user in query.order_by(User.id).all():
        if verify_password(password, user.password_hash):
            user.last_login_at = utcnow()
            db.session.commit()
            return user

    return None


def change_password(
    *,
    user_id: int,
    current_password: str,
    new_password: str,
    keep_session_id: int | None = None,
) -> User:
    """
    Replace a user's password and revoke their other sessions.

    Raises InvalidCredentialsError when current_password is wrong.
    """
    from . import session_service

    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise UserNotFoundError(f"User {user_id} not found")

    if not verify_password(current_password or "", user.password_hash):
        raise InvalidCredentialsError("Current password is incorrect")

    if current_password == new_password:
        raise PasswordValidationError("New password must be different from the current one")

    user.password_hash = hash_password(new_password)
    db.session.commit()

    session_service.revoke_all_user_sessions(
        user.id,
        reason="Password changed",
        except_session_id=keep_session_id,
    )
    return user


def list_users(*, shop_id: int) -> list[User]:
    return db.session.query(User).filter_by(shop_id=shop_id).order_by(User.username).all()
