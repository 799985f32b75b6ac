"""
Unit tests for webhook signing and verification.
"""

import pytest

from ticketing.core.signing import (
    compute_signature,
    parse_signature_header,
    sign_payload,
    verify_signature,
)

SECRET = "whsec_unit"
PAYLOAD = '{"eventType":"payment.success","sessionId":"ps_1"}'
NOW = 1_700_000_000


def test_signature_round_trip():
    header = sign_payload(SECRET, PAYLOAD, NOW)

    assert header.startswith(f"t={NOW},v1=")
    assert verify_signature(SECRET, PAYLOAD, header, now=NOW)


def test_signature_covers_timestamp_and_payload():
    assert compute_signature(SECRET, PAYLOAD, NOW) != compute_signature(SECRET, PAYLOAD, NOW + 1)
    assert compute_signature(SECRET, PAYLOAD, NOW) != compute_signature(SECRET, PAYLOAD + " ", NOW)


def test_tampered_payload_rejected():
    header = sign_payload(SECRET, PAYLOAD, NOW)
    assert not verify_signature(SECRET, PAYLOAD.replace("success", "failed"), header, now=NOW)


def test_wrong_secret_rejected():
    header = sign_payload("whsec_other", PAYLOAD, NOW)
    assert not verify_signature(SECRET, PAYLOAD, header, now=NOW)


@pytest.mark.parametrize("skew, accepted", [(300, True), (-300, True), (301, False), (-301, False)])
def test_timestamp_tolerance(skew, accepted):
    header = sign_payload(SECRET, PAYLOAD, NOW)
    assert verify_signature(SECRET, PAYLOAD, header, now=NOW + skew) is accepted


@pytest.mark.parametrize(
    "header",
    [None, "", "garbage", f"t={NOW}", "v1=abc", "t=soon,v1=abc"],
)
def test_malformed_headers_rejected(header):
    assert not verify_signature(SECRET, PAYLOAD, header, now=NOW)


def test_parse_ignores_unknown_parts():
    assert parse_signature_header(f"t={NOW}, v0=old, v1=abc") == (NOW, "abc")
