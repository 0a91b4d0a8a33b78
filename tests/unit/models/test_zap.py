"""Tests for models.zap module."""

import json

from tests.conftest import SENDER, make_event, make_receipt
from zapview.models import EventKind, ZapDetails
from zapview.models.zap import parse_description
from zapview.utils.bolt11 import decode_amount


class TestFromReceipt:
    """ZapDetails.from_receipt()."""

    def test_full_receipt(self):
        receipt = make_receipt(100, amount_sats=21, comment="great post")
        zap = ZapDetails.from_receipt(receipt, decode_amount)

        assert zap.sender_pubkey == SENDER
        assert zap.comment == "great post"
        assert zap.amount_msats == 21_000
        assert zap.amount_sats == 21

    def test_missing_bolt11(self):
        zap = ZapDetails.from_receipt(make_receipt(100, amount_sats=None), decode_amount)
        assert zap.amount_msats is None
        assert zap.amount_sats is None
        assert zap.sender_pubkey == SENDER

    def test_missing_description(self):
        zap = ZapDetails.from_receipt(make_receipt(100, sender=None), decode_amount)
        assert zap.sender_pubkey is None
        assert zap.comment == ""
        assert zap.amount_msats == 21_000

    def test_uppercase_bolt11_tag(self):
        receipt = make_event(kind=EventKind.ZAP_RECEIPT, tags=[["BOLT11", "lnbc10u1p"]])
        zap = ZapDetails.from_receipt(receipt, decode_amount)
        assert zap.amount_msats == 1_000_000

    def test_broken_invoice_keeps_sender(self):
        receipt = make_receipt(100, amount_sats=None, extra_tags=[["bolt11", "garbage"]])
        zap = ZapDetails.from_receipt(receipt, decode_amount)
        assert zap.amount_msats is None
        assert zap.sender_pubkey == SENDER

    def test_decoder_receives_invoice(self):
        seen = []

        def decoder(invoice):
            seen.append(invoice)
            return 5

        zap = ZapDetails.from_receipt(make_receipt(100, amount_sats=3), decoder)
        assert seen == ["lnbc30n1pjzaptest"]
        assert zap.amount_msats == 5


class TestParseDescription:
    """parse_description() tolerates broken zap requests."""

    def _receipt(self, description):
        return make_event(kind=EventKind.ZAP_RECEIPT, tags=[["description", description]])

    def test_invalid_json(self):
        assert parse_description(self._receipt("{broken")) == (None, "")

    def test_non_object(self):
        assert parse_description(self._receipt("[1, 2]")) == (None, "")

    def test_control_characters_stripped(self):
        raw = '{"pubkey": "' + SENDER + '", "content": "line\nbreak"}'
        assert parse_description(self._receipt(raw)) == (SENDER, "linebreak")

    def test_invalid_escape_repaired(self):
        raw = '{"pubkey": "' + SENDER + '", "content": "50\\% off"}'
        assert parse_description(self._receipt(raw)) == (SENDER, "50% off")

    def test_non_string_fields(self):
        raw = json.dumps({"pubkey": 7, "content": ["x"]})
        assert parse_description(self._receipt(raw)) == (None, "")

    def test_empty_tag(self):
        assert parse_description(self._receipt("")) == (None, "")
