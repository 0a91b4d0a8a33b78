"""
Details extracted from a kind-9735 zap receipt.

A receipt carries two tags of interest: ``description`` holds the JSON of
the zap request (sender pubkey and comment) and ``bolt11`` holds the paid
invoice. Each is parsed in isolation; a broken tag falls back to an empty
value without affecting the other.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from .event import Event


logger = logging.getLogger(__name__)

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_BAD_ESCAPE = re.compile(r'\\([^"\\/bfnrtu])')


@dataclass(frozen=True, slots=True)
class ZapDetails:
    """Sender, comment and amount of one zap receipt.

    Attributes:
        sender_pubkey: Pubkey of the zap request author, or ``None`` when the
            description tag is missing or unreadable.
        comment: Zap request content, ``""`` when absent.
        amount_msats: Invoice amount in millisatoshis, ``None`` when unknown.
    """

    sender_pubkey: str | None = None
    comment: str = ""
    amount_msats: int | None = None

    @property
    def amount_sats(self) -> int | None:
        return None if self.amount_msats is None else self.amount_msats // 1000

    @classmethod
    def from_receipt(
        cls,
        event: Event,
        decode_amount: Callable[[str], int | None],
    ) -> ZapDetails:
        """Parse the description and bolt11 tags of *event*.

        Args:
            event: A kind-9735 receipt.
            decode_amount: Invoice amount decoder returning millisatoshis or
                ``None``; see [zapview.utils.bolt11.decode_amount][].
        """
        sender, comment = parse_description(event)
        bolt11 = event.find_tag("bolt11", case_insensitive=True)
        amount = decode_amount(bolt11.value) if bolt11 is not None and bolt11.value else None
        return cls(sender_pubkey=sender, comment=comment, amount_msats=amount)


def parse_description(event: Event) -> tuple[str | None, str]:
    """Return ``(sender_pubkey, comment)`` from the receipt's description tag."""
    tag = event.find_tag("description")
    if tag is None or not tag.value:
        return None, ""

    cleaned = _BAD_ESCAPE.sub(r"\1", _CONTROL_CHARS.sub("", tag.value))
    try:
        request = json.loads(cleaned)
    except ValueError as e:
        logger.debug("description_parse_failed event=%s error=%s", event.id[:16], e)
        return None, ""
    if not isinstance(request, dict):
        return None, ""

    pubkey = request.get("pubkey")
    content = request.get("content")
    return (
        pubkey if isinstance(pubkey, str) and pubkey else None,
        content if isinstance(content, str) else "",
    )
