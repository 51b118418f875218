import hashlib
import hmac
import re

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_DOMAIN_RE = re.compile(
    r"^[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$"
)
_CNPJ_WEIGHTS_1 = (5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2)
_CNPJ_WEIGHTS_2 = (6, 5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2)


def only_digits(value: str) -> str:
    return re.sub(r"\D", "", value or "")


def is_email(value: str) -> bool:
    return bool(_EMAIL_RE.match(value or ""))


def is_domain(value: str) -> bool:
    # at least one dot and a non-numeric TLD
    if not _DOMAIN_RE.match(value or ""):
        return False
    return not value.rsplit(".", 1)[-1].isdigit()


def is_cpf(value: str) -> bool:
    digits = only_digits(value)
    if len(digits) != 11 or digits == digits[0] * 11:
        return False
    numbers = [int(d) for d in digits]
    for position in (9, 10):
        total = sum(n * (position + 1 - i) for i, n in enumerate(numbers[:position]))
        check = (total * 10) % 11 % 10
        if check != numbers[position]:
            return False
    return True


def is_cnpj(value: str) -> bool:
    digits = only_digits(value)
    if len(digits) != 14 or digits == digits[0] * 14:
        return False
    numbers = [int(d) for d in digits]
    for weights, position in ((_CNPJ_WEIGHTS_1, 12), (_CNPJ_WEIGHTS_2, 13)):
        remainder = sum(n * w for n, w in zip(numbers, weights)) % 11
        check = 0 if remainder < 2 else 11 - remainder
        if check != numbers[position]:
            return False
    return True


def verify_signature(body: bytes, signature: str, secret: str) -> bool:
    """Constant-time check of a hex HMAC-SHA256 of the raw body.

    Accepts an optional ``sha256=`` prefix on the received value.
    """
    if not signature or not secret:
        return False
    received = signature.strip()
    if received.lower().startswith("sha256="):
        received = received[len("sha256="):]
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(received.lower().encode("utf-8"), expected.encode("utf-8"))
