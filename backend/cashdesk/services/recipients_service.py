# Overview: Daily report recipient list stored as a keyed system setting.

from __future__ import annotations

import json

from flask import current_app

from ..errors import AuthorizationError, ValidationError
from ..extensions import db
from ..models import SystemSetting
from ..validation import is_valid_email
from . import permission_service


RECIPIENTS_KEY = "daily_report_recipients"
RECIPIENTS_DESCRIPTION = "Recipients of the automatic daily consolidated report"


class RecipientsValidationError(ValidationError):
    pass


def max_recipients() -> int:
    return int(current_app.config["MAX_REPORT_RECIPIENTS"])


def get_recipients() -> list[str]:
    setting = db.session.query(SystemSetting).filter_by(key=RECIPIENTS_KEY).first()
    if not setting:
        return []
    try:
        value = json.loads(setting.value_json)
    except ValueError:
        current_app.logger.warning("Ignoring malformed %s setting", RECIPIENTS_KEY)
        return []
    return [v for v in value if isinstance(v, str)] if isinstance(value, list) else []


def _normalize(emails) -> list[str]:
    if not isinstance(emails, list):
        raise RecipientsValidationError("emails must be a list of email addresses")

    cleaned: list[str] = []
    invalid: list = []
    for raw in emails:
        email = raw.strip() if isinstance(raw, str) else raw
        if not is_valid_email(email):
            invalid.append(raw)
        elif email.lower() not in {c.lower() for c in cleaned}:
            cleaned.append(email)

    if invalid:
        raise RecipientsValidationError("Every recipient must be a valid email address", invalid=invalid)

    limit = max_recipients()
    if len(cleaned) > limit:
        raise RecipientsValidationError(
            f"At most {limit} report recipients are allowed",
            max_recipients=limit,
            received=len(cleaned),
        )
    return cleaned


def set_recipients(emails, user_id: int) -> list[str]:
    """
    Replace the recipient list. Requires MANAGE_REPORT_RECIPIENTS (supervisor/admin).

    An empty list is allowed and disables report delivery.
    """
    if not permission_service.user_has_permission(user_id, "MANAGE_REPORT_RECIPIENTS"):
        raise AuthorizationError(
            "Only a supervisor or admin can change report recipients",
            required_role="supervisor",
        )

    cleaned = _normalize(emails)

    setting = db.session.query(SystemSetting).filter_by(key=RECIPIENTS_KEY).first()
    if setting is None:
        setting = SystemSetting(key=RECIPIENTS_KEY, description=RECIPIENTS_DESCRIPTION, value_json="[]")
        db.session.add(setting)

    setting.value_json = json.dumps(cleaned)
    setting.updated_by_user_id = user_id
    db.session.commit()
    return cleaned
