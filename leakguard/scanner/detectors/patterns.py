"""Built-in detection rules.

Every repeated group is either bounded or ends in a literal delimiter,
so no pattern can backtrack catastrophically.
Evaluation is linear or near-linear in the input length; the worst case
is a long run of email local-part characters with no "@", which costs
time quadratic in the length of that run.

Rules:
- email: RFC-ish email addresses
- ssn: US Social Security numbers (dashed)
- credit_card: 16-digit and 15-digit (Amex) card numbers, Luhn-validated
- password: password assignments (password=..., passwd: ...)
- api_key: api_key / secret_key assignments
- aws_access_key: AWS access key IDs (AKIA..., ASIA...)
- private_key: PEM private key headers
"""

from typing import List

from ...core.types import PatternRule
from .checksum import validate_credit_card, validate_ssn
from .pattern_registry import create_rule_adder

DEFAULT_RULES: List[PatternRule] = []

_add = create_rule_adder(DEFAULT_RULES)

# --- Contact ---
_add(
    "email",
    r"\b[A-Za-z0-9._%+-]+@(?:[A-Za-z0-9-]+\.)+[A-Za-z]{2,}\b",
    "Email address",
)

# --- Government identifiers ---
_add(
    "ssn",
    r"\b\d{3}-\d{2}-\d{4}\b",
    "US Social Security number",
    validator=validate_ssn,
)

# --- Financial ---
_add(
    "credit_card",
    r"\b(?:\d{4}[- ]?){3}\d{4}\b|\b3[47]\d{2}[- ]?\d{6}[- ]?\d{5}\b",
    "Payment card number",
    validator=validate_credit_card,
)

# --- Credentials ---
_add(
    "password",
    r"\bpass(?:word|wd)\s*[:=]\s*\S+",
    "Password assignment",
    ignore_case=True,
)
_add(
    "api_key",
    r"\b(?:api|secret)[_-]?key\s*[:=]\s*[\"']?[A-Za-z0-9_\-./+]{8,}",
    "API or secret key assignment",
    ignore_case=True,
)
_add(
    "aws_access_key",
    r"\b(?:AKIA|ASIA|AGPA|AIDA|AROA)[A-Z0-9]{16}\b",
    "AWS access key ID",
)
_add(
    "private_key",
    r"-----BEGIN (?:RSA |EC |DSA |OPENSSH |ENCRYPTED )?PRIVATE KEY-----",
    "PEM private key",
)
