import re
from typing import Optional

ROOM_CODE_PATTERN = re.compile(r"^[A-Z0-9]{3,8}$")


def normalize_room_code(raw) -> Optional[str]:
    """Trim and upper-case a user supplied room code.

    Returns None when the result is not 3-8 characters of A-Z/0-9. Callers
    must reject the request instead of substituting a default.
    """
    if not isinstance(raw, str):
        return None
    code = raw.strip().upper()
    if not code or not ROOM_CODE_PATTERN.match(code):
        return None
    return code
