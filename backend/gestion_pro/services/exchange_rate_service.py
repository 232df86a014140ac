# Overview: USD/ARS quote lookup with a configured fallback.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

import httpx
from flask import current_app


def _fallback_rate() -> Decimal:
    return Decimal(str(current_app.config.get("EXCHANGE_RATE_FALLBACK", "1000")))


def fetch_rate(client: httpx.Client | None = None) -> Decimal:
    """
    Current blue-dollar selling rate (ARS per USD).

    Reads ``blue.value_sell`` from EXCHANGE_RATE_URL. Any failure (network,
    HTTP status, malformed body, non-positive value) is logged as a warning
    and EXCHANGE_RATE_FALLBACK is returned instead.

    ``client`` lets callers inject a configured httpx.Client.
    """
    url = current_app.config["EXCHANGE_RATE_URL"]
    timeout = current_app.config.get("EXCHANGE_RATE_TIMEOUT", 5.0)

    owns_client = client is None
    if owns_client:
        client = httpx.Client(timeout=timeout)

    try:
        response = client.get(url)
        response.raise_for_status()
        rate = Decimal(str(response.json()["blue"]["value_sell"]))
        if rate <= 0:
            raise ValueError(f"non-positive rate {rate}")
        return rate
    except (httpx.HTTPError, KeyError, TypeError, ValueError, InvalidOperation) as exc:
        fallback = _fallback_rate()
        current_app.logger.warning("Exchange rate lookup failed (%s); using fallback %s", exc, fallback)
        return fallback
    finally:
        if owns_client:
            client.close()


def convert_total(total_cents: int, base_currency: str, payment_currency: str, rate) -> int:
    """
    Convert a document total into the payment currency (integer cents, half-up).

    - same currency: unchanged
    - ARS base paid in USD: total / rate
    - USD base paid in ARS: total * rate
    """
    base_currency = (base_currency or "ARS").upper()
    payment_currency = (payment_currency or base_currency).upper()
    if base_currency == payment_currency:
        return int(total_cents)

    rate = Decimal(str(rate))
    if rate <= 0:
        raise ValueError("exchange rate must be > 0")

    if base_currency == "ARS" and payment_currency == "USD":
        converted = Decimal(total_cents) / rate
    elif base_currency == "USD" and payment_currency == "ARS":
        converted = Decimal(total_cents) * rate
    else:
        raise ValueError(f"Unsupported conversion {base_currency} -> {payment_currency}")

    return int(converted.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
