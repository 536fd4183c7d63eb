"""Sign-in for customers and technicians."""

from __future__ import annotations

from typing import Optional

from passlib.context import CryptContext

from . import data_manager, errors, log
from .constants import Role
from .errors import Failure, Result
from .stores import UserStore

INVALID_CREDENTIALS = "Invalid credentials. Please try again."

pin_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_pin(pin: str) -> str:
    """Return a salted digest of ``pin`` suitable for the ``Users`` sheet."""

    return pin_context.hash(pin)


def authenticate(store: UserStore, name: str, pin: str) -> Result[data_manager.UserRow]:
    """Return the user registered under ``name`` if ``pin`` matches.

    Unknown names and wrong PINs produce the same ``UNAUTHORIZED`` failure.
    """

    user = store.find_by_name(name)
    if user is None:
        pin_context.dummy_verify()
    if user is None or not pin_context.verify(pin, user.pin_hash):
        log.warning("Failed sign-in attempt for '%s'", name)
        return errors.unauthorized(INVALID_CREDENTIALS)
    log.info("User '%s' signed in as %s", user.user_id, user.role.value)
    return user


def require_role(user: data_manager.UserRow, role: Role) -> Optional[Failure]:
    if user.role is not role:
        return errors.unauthorized(f"This operation requires the {role.value.lower()} role")
    return None


def register_user(store: UserStore, *, user_id: str, name: str, pin: str, role: Role) -> data_manager.UserRow:
    """Create a user with a hashed PIN.

    Raises:
        ValueError: If the name is taken or the PIN is not 4 to 6 digits.
    """

    if store.find_by_name(name) is not None:
        raise ValueError(f"User name already registered: {name}")
    if not (pin.isdigit() and 4 <= len(pin) <= 6):
        raise ValueError("PIN must be 4 to 6 digits")
    user = data_manager.UserRow(
        user_id=user_id,
        name=name,
        pin_hash=hash_pin(pin),
        role=role,
    )
    store.add(user)
    log.info("Registered %s '%s'", role.value.lower(), user_id)
    return user
