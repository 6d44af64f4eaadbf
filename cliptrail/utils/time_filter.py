from datetime import datetime
from typing import Optional

import dateparser


def parse_since(text: Optional[str], now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Turn "2 hours ago", "yesterday", "last week" or an ISO date into a datetime cutoff
    None when there is nothing to parse, ValueError when the text is not a time
    """
    if text is None or not text.strip():
        return None

    parsed = dateparser.parse(
        text.strip(),
        settings={
            "PREFER_DATES_FROM": "past",
            "RETURN_AS_TIMEZONE_AWARE": False,
            "RELATIVE_BASE": now or datetime.now(),
        },
    )
    if parsed is None:
        raise ValueError(f"No time expression found in {text!r}")
    return parsed
