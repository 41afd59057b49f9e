# Overview: Authorization policy for high-value till movements.

"""
Movement Authorization Policy

WITHDRAWAL, VENDOR_PAYMENT and ADJUSTMENT movements above the configured
threshold need either an elevated recorder or a separate elevated
authorizer. Evaluated before the movement row is written.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from flask import current_app

from ..errors import AuthorizationError
from ..extensions import db
from ..models import MovementKind, User
from . import permission_service


AUTHORIZATION_KINDS = {
    MovementKind.WITHDRAWAL,
    MovementKind.VENDOR_PAYMENT,
    MovementKind.ADJUSTMENT,
}


class AuthorizationRequiredError(AuthorizationError):
    pass


@dataclass(frozen=True)
class AuthorizationDecision:
    requires_authorization: bool
    authorized_by_user_id: int | None


def authorization_threshold() -> Decimal:
    return Decimal(str(current_app.config["MOVEMENT_AUTHORIZATION_THRESHOLD"]))


def requires_authorization(kind: MovementKind, amount: Decimal) -> bool:
    return kind in AUTHORIZATION_KINDS and amount > authorization_threshold()


def evaluate(
    kind: MovementKind,
    amount: Decimal,
    user_id: int,
    authorized_by_user_id: int | None = None,
) -> AuthorizationDecision:
    """
    Decide whether a movement may be recorded and who authorized it.

    Raises AuthorizationRequiredError when the movement needs authorization
    and neither the recorder nor the named authorizer holds an elevated role.
    """
    if not requires_authorization(kind, amount):
        return AuthorizationDecision(False, None)

    if permission_service.is_elevated(user_id):
        return AuthorizationDecision(True, user_id)

    threshold = str(authorization_threshold())
    if authorized_by_user_id is None:
        raise AuthorizationRequiredError(
            f"{kind.value} above {threshold} requires supervisor authorization",
            kind=kind.value,
            threshold=threshold,
            required_role="supervisor",
        )

    authorizer = db.session.query(User).filter_by(id=authorized_by_user_id, is_active=True).first()
    if not authorizer or not permission_service.is_elevated(authorizer.id):
        raise AuthorizationRequiredError(
            "Authorizing user must be an active supervisor or admin",
            kind=kind.value,
            threshold=threshold,
            authorized_by=authorized_by_user_id,
            required_role="supervisor",
        )

    return AuthorizationDecision(True, authorizer.id)
