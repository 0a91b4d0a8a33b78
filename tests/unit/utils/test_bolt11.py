"""Tests for utils.bolt11 module."""

import pytest

from zapview.core.exceptions import DecodeError
from zapview.utils.bolt11 import decode_amount, decode_amount_strict


class TestDecodeAmount:
    """Amounts in millisatoshis from the invoice prefix."""

    @pytest.mark.parametrize(
        ("invoice", "msats"),
        [
            ("lnbc2500u1pvjluezpp5qqqsyqcyq5rqwzqfqqqsyqcyq5rqwzqfq", 250_000_000),
            ("lnbc20m1pvjluezhp58yjmdan79s6qqdhdzgynm4zwqd5d7xmw5fk98", 2_000_000_000),
            ("lnbc9678785340p1pwmna7lpp5gc3xfm08u9qy06djf8dfflhugl6p7lg", 967_878_534),
            ("lnbc210n1pjzaptest", 21_000),
            ("lnbc2m1pjzaptest", 200_000_000),
            ("lnbc1000n1pjzaptest", 100_000),
            ("lntb20m1pvjluezhp58yjmdan79s6qqdhdzgynm4zwqd5d7xmw5fk98", 2_000_000_000),
            ("lnbcrt50u1pjzaptest", 5_000_000),
            ("lntbs10u1pjzaptest", 1_000_000),
        ],
    )
    def test_amounts(self, invoice: str, msats: int) -> None:
        assert decode_amount(invoice) == msats

    def test_no_amount(self) -> None:
        assert decode_amount("lnbc1pvjluezpp5qqqsyqcyq5rqwzqfqqqsyqcyq5rqwzqfq") is None

    def test_uppercase(self) -> None:
        assert decode_amount("LNBC10U1PJZAPTEST") == 1_000_000

    def test_lightning_uri(self) -> None:
        assert decode_amount("lightning:lnbc10u1pjzaptest") == 1_000_000

    def test_whole_bitcoin(self) -> None:
        assert decode_amount("lnbc21pjzaptest") == 2 * 100_000_000_000

    @pytest.mark.parametrize(
        "invoice",
        [
            "",
            "garbage",
            "bitcoin1qxyz",
            "lnbc10x1pjzaptest",
            "lnbcm1pjzaptest",
            "lnbc25p1pjzaptest",
        ],
    )
    def test_malformed_returns_none(self, invoice: str) -> None:
        assert decode_amount(invoice) is None

    def test_strict_raises(self) -> None:
        with pytest.raises(DecodeError, match="pico-BTC"):
            decode_amount_strict("lnbc25p1pjzaptest")

    def test_strict_rejects_non_string(self) -> None:
        with pytest.raises(DecodeError):
            decode_amount_strict(123)  # type: ignore[arg-type]
