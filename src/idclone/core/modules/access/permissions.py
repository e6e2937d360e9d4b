"""Permission gate deciding which operation types an operator may run."""

from idclone.core.modules.operator.models import CardType, User
from idclone.core.modules.workflow.models import OperationType
from idclone.errors import PermissionDeniedError


def allowed_operations(user: User) -> frozenset[OperationType]:
    """Return the operation types the operator may select.

    Unverified operators get nothing; admins and every tier except ``hour``
    get both operations; hour-card operators may only modify their ID.
    """
    if not user.verified:
        return frozenset()
    if user.is_admin or user.card_type != CardType.HOUR:
        return frozenset(OperationType)
    return frozenset({OperationType.MODIFY_ID})


def ensure_verified(user: User) -> None:
    if not user.verified:
        raise PermissionDeniedError("Complete operator verification first")


def ensure_operation_allowed(user: User, operation_type: OperationType) -> None:
    """Raise PermissionDeniedError unless the operator may run the operation."""
    ensure_verified(user)
    if operation_type not in allowed_operations(user):
        raise PermissionDeniedError("Hour-card operators cannot use the clone feature")


def describe_tier(user: User) -> str:
    """One-line summary of the operator's permissions for the activity log."""
    if user.is_admin:
        return "Administrator logged in, all features available"
    if user.card_type == CardType.HOUR:
        return "Hour-card operator logged in, only Local ID modification is available"
    if user.card_type == CardType.FULL:
        return "Full-card operator logged in, all features available"
    return "Operator logged in, all features available"
