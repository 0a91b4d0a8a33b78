"""Payment-amount codec for BOLT-11 invoices.

Only the amount is needed to render a zap, and BOLT-11 carries it in the
human-readable part (HRP) in front of the last ``1`` separator:
``ln`` + currency + optional ``<digits><multiplier>``. The data part
(payment hash, signature, routing hints) is not decoded.

Multipliers, in millisatoshis per unit:

| suffix | unit       | msat per unit |
|--------|------------|---------------|
| (none) | bitcoin    | 100_000_000_000 |
| ``m``  | milli-BTC  | 100_000_000   |
| ``u``  | micro-BTC  | 100_000       |
| ``n``  | nano-BTC   | 100           |
| ``p``  | pico-BTC   | 1/10          |

Examples:
    ```python
    decode_amount("lnbc2500u1pvjluez...")  # 250_000_000
    decode_amount("lnbc1pvjluez...")       # None (no amount)
    ```
"""

from __future__ import annotations

import logging
import re
from typing import Final

from zapview.core.exceptions import DecodeError


logger = logging.getLogger(__name__)

_HRP_PATTERN: Final[re.Pattern[str]] = re.compile(r"^ln(bcrt|bc|tbs|tb|sb)(\d*)([munp]?)$")

_MSATS_PER_BTC: Final[int] = 100_000_000_000

_MULTIPLIER_MSATS: Final[dict[str, int]] = {
    "": _MSATS_PER_BTC,
    "m": _MSATS_PER_BTC // 1_000,
    "u": _MSATS_PER_BTC // 1_000_000,
    "n": _MSATS_PER_BTC // 1_000_000_000,
}


def decode_amount_strict(bolt11: str) -> int | None:
    """Return the invoice amount in millisatoshis (``None`` if it has none).

    Raises:
        DecodeError: If the string is not a BOLT-11 invoice or the amount
            is not representable in whole millisatoshis.
    """
    if not isinstance(bolt11, str):
        raise DecodeError("invoice must be a string")
    invoice = bolt11.strip().lower()
    if invoice.startswith("lightning:"):
        invoice = invoice[len("lightning:") :]
    separator = invoice.rfind("1")
    if separator <= 0:
        raise DecodeError("invoice has no bech32 separator")

    match = _HRP_PATTERN.match(invoice[:separator])
    if match is None:
        raise DecodeError(f"invoice prefix is invalid: {invoice[:separator][:16]!r}")
    _, digits, multiplier = match.groups()

    if not digits:
        if multiplier:
            raise DecodeError("invoice multiplier without amount")
        return None

    amount = int(digits)
    if multiplier == "p":
        if amount % 10:
            raise DecodeError("pico-BTC amount is not a whole millisatoshi")
        return amount // 10
    return amount * _MULTIPLIER_MSATS[multiplier]


def decode_amount(bolt11: str) -> int | None:
    """Return the invoice amount in millisatoshis, or ``None`` when unknown."""
    try:
        return decode_amount_strict(bolt11)
    except DecodeError as e:
        logger.debug("bolt11_decode_failed error=%s", e)
        return None
