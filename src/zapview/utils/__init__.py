"""Adapters for the external collaborators of the ingestion core.

Attributes:
    nip19: NIP-19 identifier codec (``decode``, ``encode_*``, coordinates).
    bolt11: Invoice amount codec ([decode_amount][zapview.utils.bolt11.decode_amount]).
    http: Bounded JSON reads over aiohttp.
    transport: [RelayTransport][zapview.utils.transport.RelayTransport]
        protocol and its ``nostr_sdk`` implementation.

Examples:
    ```python
    from zapview.utils.nip19 import decode
    from zapview.utils.transport import NostrSdkTransport
    ```
"""

from .bolt11 import decode_amount
from .http import fetch_json, read_bounded_json
from .nip19 import (
    Coordinate,
    decode,
    encode_coordinate,
    encode_nevent,
    encode_note,
    encode_nprofile,
    encode_npub,
    parse_coordinate,
    shorten_identifier,
)
from .transport import NostrSdkTransport, RelayTransport, Subscription, to_sdk_filter


__all__ = [
    "Coordinate",
    "NostrSdkTransport",
    "RelayTransport",
    "Subscription",
    "decode",
    "decode_amount",
    "encode_coordinate",
    "encode_nevent",
    "encode_note",
    "encode_nprofile",
    "encode_npub",
    "fetch_json",
    "parse_coordinate",
    "read_bounded_json",
    "shorten_identifier",
    "to_sdk_filter",
]
