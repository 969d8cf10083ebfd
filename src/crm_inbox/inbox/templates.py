"""Fill ``{{placeholder}}`` variables in approved templates."""

from __future__ import annotations

import re
from datetime import date

from crm_inbox.api.models import Contact

NO_ORDER = "N/A"

_PLACEHOLDER = re.compile(r"{{\s*([a-zA-Z_]+)\s*}}")


def template_variables(
    contact: Contact | None,
    company_name: str = "",
    order_id: str | None = None,
    today: date | None = None,
) -> dict[str, str]:
    values = {
        "order_id": order_id or NO_ORDER,
        "date": (today or date.today()).strftime("%Y-%m-%d"),
    }
    if contact is not None:
        values["name"] = contact.name or ""
        values["phone"] = contact.phone or ""
        values["email"] = contact.email or ""
    if company_name:
        values["company_name"] = company_name
    return values


def render_template(content: str, variables: dict[str, str]) -> str:
    """Substitute known placeholders case-insensitively; leave the rest alone."""

    def _sub(match: re.Match) -> str:
        key = match.group(1).lower()
        return variables[key] if key in variables else match.group(0)

    return _PLACEHOLDER.sub(_sub, content)
