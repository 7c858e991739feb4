"""
Relevant pricing fields per product and rate value parsing.

Each product exposes a different subset of rate fields. Every read and
write of pricing goes through ``relevant_fields`` so fields outside the
product's set are never stored or summed.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from telecore.core.exceptions import ValidationError

RATE_FIELDS: tuple[str, ...] = (
    "nrc",
    "mrc",
    "ppm",
    "ppm_fix",
    "ppm_mobile",
    "ppm_payphone",
    "arc",
    "mo",
    "mt",
    "incoming_ppm",
    "outgoing_ppm_fix",
    "outgoing_ppm_mobile",
    "incoming_sms",
    "outgoing_sms",
)

TERM_FIELDS: tuple[str, ...] = (
    "billing_pulse",
    "estimated_lead_time",
    "contract_term",
    "disconnection_notice_term",
)

# Rate fields charged per month when invoicing; ``arc`` is spread over
# twelve months.
RECURRING_FIELDS: tuple[str, ...] = ("mrc", "arc")

PRICING_FIELDS_BY_PRODUCT: dict[str, tuple[str, ...]] = {
    "did": ("nrc", "mrc", "ppm"),
    "freephone": ("nrc", "mrc", "ppm_fix", "ppm_mobile", "ppm_payphone"),
    "univ_freephone": ("nrc", "mrc", "ppm_fix", "ppm_mobile", "ppm_payphone"),
    "two_way_voice": (
        "nrc",
        "mrc",
        "incoming_ppm",
        "outgoing_ppm_fix",
        "outgoing_ppm_mobile",
    ),
    "two_way_sms": ("nrc", "mrc", "arc", "mo", "mt"),
    "mobile": (
        "nrc",
        "mrc",
        "incoming_ppm",
        "outgoing_ppm_fix",
        "outgoing_ppm_mobile",
        "incoming_sms",
        "outgoing_sms",
    ),
}

PRODUCT_CODES: tuple[str, ...] = tuple(PRICING_FIELDS_BY_PRODUCT)

# Scale of every Numeric money column; parsed values are rounded to it
# before any zero or sign check so stored and computed values agree.
AMOUNT_QUANTUM = Decimal("0.0001")


def relevant_fields(product_code: str) -> tuple[str, ...]:
    """
    Get the rate fields relevant to a product.

    Args:
        product_code: Product code such as ``did`` or ``two_way_sms``

    Returns:
        Ordered tuple of rate field names

    Raises:
        ValidationError: If the product code is unknown
    """
    code = (product_code or "").strip().lower()
    try:
        return PRICING_FIELDS_BY_PRODUCT[code]
    except KeyError:
        raise ValidationError(
            f"Unknown product code: {product_code}",
            product_code=product_code,
            valid_codes=list(PRODUCT_CODES),
        )


def quantize_amount(amount: Decimal, field: Optional[str] = None) -> Decimal:
    """
    Round a finite amount to the stored money scale.

    Raises:
        ValidationError: If the amount does not fit the money columns
    """
    try:
        return amount.quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError(
            f"Amount out of range for {field or 'amount'}",
            field=field,
            value=amount,
        )


def parse_rate(value: Any, field: Optional[str] = None) -> Optional[Decimal]:
    """
    Parse a rate value, accepting currency formatted strings like ``"$5.00"``.

    Values are rounded to the stored money scale first. Empty,
    unparseable, non-finite and zero (after rounding) values return None
    so the field is omitted rather than stored as zero.

    Args:
        value: Raw value (str, int, float or Decimal)
        field: Field name, used in error context

    Returns:
        Parsed positive Decimal, or None when the field should be dropped

    Raises:
        ValidationError: If the value is negative
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        amount = Decimal(str(value))
    elif isinstance(value, str):
        text = value.strip()
        if text.startswith("$"):
            text = text[1:].strip()
        if not text:
            return None
        try:
            amount = Decimal(text)
        except InvalidOperation:
            return None
    else:
        return None

    if not amount.is_finite():
        return None
    amount = quantize_amount(amount, field)
    if amount == 0:
        return None
    if amount < 0:
        raise ValidationError(
            "Rate values must not be negative",
            field=field,
            value=value,
        )
    return amount


def parse_term(value: Any) -> Optional[str]:
    """Normalize a term field to a trimmed string, or None when empty."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def extract_rates(product_code: str, fields: Mapping[str, Any]) -> dict[str, Decimal]:
    """
    Keep only the populated rate fields relevant to a product.

    Fields outside the product's set are dropped silently.
    """
    rates: dict[str, Decimal] = {}
    for name in relevant_fields(product_code):
        if name not in fields:
            continue
        amount = parse_rate(fields[name], field=name)
        if amount is not None:
            rates[name] = amount
    return rates


def extract_terms(fields: Mapping[str, Any]) -> dict[str, str]:
    """Keep only the non-empty term fields."""
    terms: dict[str, str] = {}
    for name in TERM_FIELDS:
        term = parse_term(fields.get(name))
        if term is not None:
            terms[name] = term
    return terms


def sum_rates(rates: Mapping[str, Decimal]) -> Decimal:
    """Sum every populated rate value."""
    return sum(rates.values(), Decimal("0"))


def parse_amount(value: Any, field: str = "amount") -> Decimal:
    """
    Parse a monetary amount strictly.

    Unlike ``parse_rate`` nothing is dropped: zero is kept, and empty or
    unparseable input is an error. The result is rounded to the stored
    money scale; sign checks are left to the caller.

    Raises:
        ValidationError: If the value is missing, unparseable or not finite
    """
    if isinstance(value, bool):
        amount = None
    elif isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        amount = Decimal(str(value))
    elif isinstance(value, str):
        text = value.strip()
        if text.startswith("$"):
            text = text[1:].strip()
        try:
            amount = Decimal(text)
        except InvalidOperation:
            amount = None
    else:
        amount = None

    if amount is None or not amount.is_finite():
        raise ValidationError(f"Invalid {field}", field=field, value=value)
    return quantize_amount(amount, field)
