"""Sequential invoice numbers of the form {PREFIX}-{year}-{NNN}."""
import logging
import re
from datetime import datetime
from typing import Optional

from app.config import PRICING_DEFAULTS

logger = logging.getLogger("ratna-api.numbering")

_TRAILING_DIGITS = re.compile(r"(\d+)$")


def next_invoice_number(
    prior_number: Optional[str],
    prefix: Optional[str] = None,
    year: Optional[int] = None,
) -> str:
    """
    Suggest the next invoice number after a vendor's most recent one.

    The sequence continues from the trailing digits of ``prior_number``
    (the year component is not consulted). No prior number starts at 1; a
    prior number without trailing digits restarts at 1 and logs a warning.

    Nothing is reserved: two calls without persisting in between return the
    same number.
    """
    prefix = (prefix or str(PRICING_DEFAULTS["invoice_prefix"])).strip()
    year = year or datetime.now().year
    width = int(PRICING_DEFAULTS["sequence_width"])

    sequence = 1
    if prior_number:
        match = _TRAILING_DIGITS.search(prior_number.strip())
        if match:
            sequence = int(match.group(1)) + 1
        else:
            logger.warning(f"Malformed prior invoice number {prior_number!r}; restarting sequence at 1")

    return f"{prefix}-{year}-{sequence:0{width}d}"
