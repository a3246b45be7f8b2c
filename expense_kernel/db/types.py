"""
Amount and currency coercion shared by the schedule validators and settings.

Amounts are ``Decimal`` end to end; the ORM stores them as Numeric(19, 4)
through ``Base.type_annotation_map``.  Currency codes are three-letter
ISO 4217 codes, upper case.
"""

from decimal import Decimal, InvalidOperation
from typing import Any

from expense_kernel.exceptions import InvalidCurrencyError

ZERO = Decimal("0")


def to_money(value: Any) -> Decimal | None:
    """
    Read a user-supplied amount.

    ``None`` and ``""`` mean "not given" and come back as None.  Floats are
    read through their ``str`` form, so ``0.1`` stays ``Decimal("0.1")``.

    Raises:
        ValueError: for booleans and anything ``Decimal`` cannot parse.
    """
    if value is None or value == "":
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a monetary amount: {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Not a monetary amount: {value!r}") from exc


# Active ISO 4217 codes, grouped by first letter.
ISO_4217_CURRENCIES: frozenset[str] = frozenset(
    code
    for group in (
        "AED AFN ALL AMD ANG AOA ARS AUD AWG AZN",
        "BAM BBD BDT BGN BHD BIF BMD BND BOB BRL BSD BTN BWP BYN BZD",
        "CAD CDF CHF CLP CNY COP CRC CUP CVE CZK",
        "DJF DKK DOP DZD",
        "EGP ERN ETB EUR",
        "FJD FKP",
        "GBP GEL GHS GIP GMD GNF GTQ GYD",
        "HKD HNL HTG HUF",
        "IDR ILS INR IQD IRR ISK",
        "JMD JOD JPY",
        "KES KGS KHR KMF KPW KRW KWD KYD KZT",
        "LAK LBP LKR LRD LSL LYD",
        "MAD MDL MGA MKD MMK MNT MOP MRU MUR MVR MWK MXN MYR MZN",
        "NAD NGN NIO NOK NPR NZD",
        "OMR",
        "PAB PEN PGK PHP PKR PLN PYG",
        "QAR",
        "RON RSD RUB RWF",
        "SAR SBD SCR SDG SEK SGD SHP SLE SOS SRD SSP STN SVC SYP SZL",
        "THB TJS TMT TND TOP TRY TTD TWD TZS",
        "UAH UGX USD UYU UZS",
        "VES VND VUV",
        "WST",
        "XAF XCD XOF XPF",
        "YER",
        "ZAR ZMW ZWL",
    )
    for code in group.split()
)


def validate_currency(currency: str) -> str:
    """
    Normalize a currency code.

    Returns:
        The code stripped and upper-cased.

    Raises:
        InvalidCurrencyError: if the result is not in ISO_4217_CURRENCIES.
    """
    if not isinstance(currency, str) or not currency.strip():
        raise InvalidCurrencyError(str(currency))
    code = currency.strip().upper()
    if code not in ISO_4217_CURRENCIES:
        raise InvalidCurrencyError(currency)
    return code


def is_valid_currency(currency: str) -> bool:
    try:
        validate_currency(currency)
    except InvalidCurrencyError:
        return False
    return True
