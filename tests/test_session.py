from __future__ import annotations

import base64
import json

import pytest

from pdf_tools_api.session import SessionSigner

NOW = 1_700_000_000


def _signer(key: str = "signing-key") -> SessionSigner:
    return SessionSigner(key)


def test_issued_token_round_trips_username() -> None:
    signer = _signer()
    token = signer.issue("admin", now=NOW)

    assert token.startswith("v1.")
    assert token.count(".") == 2
    assert "=" not in token
    assert signer.verify(token, now=NOW + 10) == "admin"


def test_payload_is_canonical_json_with_expiry() -> None:
    token = _signer().issue("admin", now=NOW)
    payload_b64 = token.split(".")[1]
    payload = base64.urlsafe_b64decode(payload_b64 + "=" * (-len(payload_b64) % 4))

    assert payload == json.dumps({"exp": NOW + 86400, "u": "admin"}, separators=(",", ":")).encode()


def test_token_expires_exactly_at_ttl() -> None:
    signer = _signer()
    token = signer.issue("admin", now=NOW)

    assert signer.verify(token, now=NOW + 86399) == "admin"
    assert signer.verify(token, now=NOW + 86400) is None


def test_token_from_another_key_is_rejected() -> None:
    token = _signer("key-a").issue("admin", now=NOW)

    assert _signer("key-b").verify(token, now=NOW) is None


def test_tampered_payload_is_rejected() -> None:
    signer = _signer()
    version, _, signature = signer.issue("admin", now=NOW).split(".")
    forged_payload = base64.urlsafe_b64encode(
        json.dumps({"exp": NOW + 10**9, "u": "admin"}).encode()
    ).rstrip(b"=").decode()

    assert signer.verify(f"{version}.{forged_payload}.{signature}", now=NOW) is None


def test_signature_padding_bits_mutation_is_rejected() -> None:
    signer = _signer()
    token = signer.issue("admin", now=NOW)
    head, signature = token.rsplit(".", 1)
    alphabet = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_"
    # A 32-byte digest leaves two unused bits in the final base64 character.
    index = alphabet.index(signature[-1])
    mutated = signature[:-1] + alphabet[index ^ 1]

    assert signer.verify(f"{head}.{mutated}", now=NOW) is None


@pytest.mark.parametrize(
    "token",
    [
        "",
        "v1",
        "v1.abc",
        "v1.a.b.c",
        "v2.e30.sig",
        "v1.!!!.sig",
        "v1.e30.éé",
    ],
)
def test_malformed_tokens_are_rejected(token: str) -> None:
    assert _signer().verify(token, now=NOW) is None


def test_signed_payload_with_wrong_types_is_rejected() -> None:
    signer = _signer()

    def forge(payload: object) -> str:
        payload_b64 = base64.urlsafe_b64encode(json.dumps(payload).encode()).rstrip(b"=").decode()
        return f"v1.{payload_b64}.{signer._sign(payload_b64)}"

    assert signer.verify(forge({"u": "admin", "exp": str(NOW + 100)}), now=NOW) is None
    assert signer.verify(forge({"u": 7, "exp": NOW + 100}), now=NOW) is None
    assert signer.verify(forge({"u": "admin", "exp": True}), now=NOW) is None
    assert signer.verify(forge(["admin"]), now=NOW) is None
    assert signer.verify(forge({"u": "admin", "exp": NOW + 100}), now=NOW) == "admin"


def test_signer_rejects_empty_key() -> None:
    with pytest.raises(ValueError):
        SessionSigner("")
