# Spanish mobile/landline number validation shared by the contacts and Bizum tools.

import re
from typing import Optional

SPANISH_PHONE_PATTERN = re.compile(r"^(\+34|0034|34)?([6789]\d{8})$")


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """
    Returns the number in canonical '+34XXXXXXXXX' form, or None when it is not
    a valid Spanish number. Spaces, dots and dashes are ignored.
    """
    if not phone:
        return None
    cleaned = re.sub(r"[\s.\-]", "", str(phone))
    match = SPANISH_PHONE_PATTERN.match(cleaned)
    if not match:
        return None
    return f"+34{match.group(2)}"
