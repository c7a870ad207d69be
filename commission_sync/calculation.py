"""Commission deduction math"""
from commission_sync.exceptions import InvalidRateError
from commission_sync.models.commission import CommissionAmounts

def validate_rate(rate: float, label: str = "rate") -> float:
    """Ensure a deduction rate is a fraction in [0, 1]"""
    if rate is None:
        raise InvalidRateError(f"{label} is missing")
    rate = float(rate)
    if rate < 0 or rate > 1:
        raise InvalidRateError(f"{label} {rate} is outside [0, 1]")
    return rate

def compute_commission(commission: float, pending_commission: float,
                       exchange_rate: float, tier_rate: float) -> CommissionAmounts:
    """
    Apply the exchange cut, then the tier cut, to the raw commission.

    The deductions chain multiplicatively: a 20% exchange cut and a
    10% tier cut on 100 leave 100 * 0.8 * 0.9 = 72.
    """
    exchange_rate = validate_rate(exchange_rate, "exchange rate")
    tier_rate = validate_rate(tier_rate, "tier rate")

    raw_total = commission + pending_commission
    after_exchange = raw_total * (1 - exchange_rate)
    user_total = after_exchange * (1 - tier_rate)

    return CommissionAmounts(
        raw_total=raw_total,
        after_exchange=after_exchange,
        user_total=user_total,
        exchange_rate=exchange_rate,
        tier_rate=tier_rate
    )
