import hashlib
import hmac

import pytest

from whmcs_assistant.services.whmcs_service import WhmcsService
from whmcs_assistant.utils import validators


@pytest.mark.parametrize(
    "identifier, expected",
    [
        ("maria@example.com", "email"),
        ("42", "id"),
        ("1234567890", "id"),
        ("529.982.247-25", "cpf"),
        ("52998224725", "cpf"),
        ("11.222.333/0001-81", "cnpj"),
        ("exemplo.com.br", "domain"),
        ("12345678901", "unknown"),
        ("Maria Silva", "unknown"),
    ],
)
def test_identify_client_type(identifier, expected):
    assert WhmcsService.identify_client_type(identifier) == expected


def test_cpf_rejects_repeated_digits_and_bad_checksum():
    assert not validators.is_cpf("111.111.111-11")
    assert not validators.is_cpf("52998224724")


def test_cnpj_rejects_bad_checksum():
    assert validators.is_cnpj("11222333000181")
    assert not validators.is_cnpj("11222333000182")


def test_domain_requires_alphabetic_tld():
    assert validators.is_domain("cliente.com")
    assert not validators.is_domain("192.168.0.1")
    assert not validators.is_domain("localhost")


def test_verify_signature_accepts_prefixed_and_plain_hex():
    body = b'{"sender":"5511999999999"}'
    digest = hmac.new(b"s3cret", body, hashlib.sha256).hexdigest()

    assert validators.verify_signature(body, digest, "s3cret")
    assert validators.verify_signature(body, f"sha256={digest}", "s3cret")
    assert not validators.verify_signature(body, digest, "other")
    assert not validators.verify_signature(body + b" ", digest, "s3cret")
    assert not validators.verify_signature(body, "", "s3cret")
    assert not validators.verify_signature(body, "café", "s3cret")
    assert not validators.verify_signature(body, f"sha256={digest[:-1]}é", "s3cret")
