"""
Fee schedule value object.

Built once from Settings at process start and passed explicitly into the fee
calculator and the payout services. Rates are fractions (0.029 = 2.9%);
fixed fees and payout limits are configured in major units and exposed in
minor units where the services need integers.
"""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Tuple

from pydantic import BaseModel, ConfigDict

from creator_payouts.config import Settings
from creator_payouts.core.errors import UnsupportedProviderError, ValidationError

CENTS_PER_UNIT = Decimal("100")


def round_half_up(value: Decimal) -> int:
    """Round to the nearest minor unit, halves away from zero."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_minor_units(major: Decimal) -> int:
    """Convert a configured major-unit amount (dollars) to cents."""
    return round_half_up(major * CENTS_PER_UNIT)


class PurchaseProvider(str, Enum):
    """Providers that can process fan purchases."""

    STRIPE = "stripe"
    PAYPAL = "paypal"
    AUTHORIZE_NET = "authorize_net"


class PayoutProvider(str, Enum):
    """Providers that can send creator payouts."""

    PAYPAL = "paypal"


class TransactionCategory(str, Enum):
    """Creator revenue categories."""

    GEMS = "gems"
    SUBSCRIPTION = "subscription"
    PAID_POST = "paid_post"
    CAMEO = "cameo"


class CheckoutKind(str, Enum):
    """Which fan-side fee is added at checkout."""

    PURCHASE = "purchase"
    GEMS = "gems"


def _coerce(enum_cls: type[Enum], value: object) -> Enum:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        if enum_cls in (PurchaseProvider, PayoutProvider):
            raise UnsupportedProviderError(value) from None
        raise ValidationError(f"Unsupported {enum_cls.__name__}: {value}") from None


def parse_purchase_provider(value: object) -> PurchaseProvider:
    return _coerce(PurchaseProvider, value)  # type: ignore[return-value]


def parse_payout_provider(value: object) -> PayoutProvider:
    return _coerce(PayoutProvider, value)  # type: ignore[return-value]


def parse_category(value: object) -> TransactionCategory:
    return _coerce(TransactionCategory, value)  # type: ignore[return-value]


def parse_checkout_kind(value: object) -> CheckoutKind:
    return _coerce(CheckoutKind, value)  # type: ignore[return-value]


class FeeSchedule(BaseModel):
    """Immutable fee and payout-limit configuration."""

    model_config = ConfigDict(frozen=True)

    fan_platform_fee: Decimal
    fan_gems_fee: Decimal
    creator_platform_fee: Decimal
    creator_referral_fee: Decimal

    stripe_fee: Decimal
    stripe_fee_fixed: Decimal
    paypal_fee: Decimal
    paypal_fee_fixed: Decimal
    authorize_net_fee: Decimal
    authorize_net_fee_fixed: Decimal

    paypal_fee_payout_international_percentage: Decimal
    paypal_fee_payout_us_fixed: Decimal

    min_payout_amount: Decimal
    max_payout_amount: Decimal
    currency: str = "USD"

    @classmethod
    def from_settings(cls, settings: Settings) -> FeeSchedule:
        """Snapshot the fee configuration from settings."""
        return cls(**{name: getattr(settings, name) for name in cls.model_fields})

    def processing_rate(self, provider: PurchaseProvider | str) -> Tuple[Decimal, Decimal]:
        """Return (percentage, fixed fee in major units) for a purchase provider."""
        provider = parse_purchase_provider(provider)
        if provider is PurchaseProvider.STRIPE:
            return self.stripe_fee, self.stripe_fee_fixed
        elif provider is PurchaseProvider.PAYPAL:
            return self.paypal_fee, self.paypal_fee_fixed
        elif provider is PurchaseProvider.AUTHORIZE_NET:
            return self.authorize_net_fee, self.authorize_net_fee_fixed
        raise UnsupportedProviderError(provider)

    def platform_fee_for(self, category: TransactionCategory | str) -> Decimal:
        """Default creator platform fee for a revenue category."""
        category = parse_category(category)
        if category in (
            TransactionCategory.GEMS,
            TransactionCategory.SUBSCRIPTION,
            TransactionCategory.PAID_POST,
            TransactionCategory.CAMEO,
        ):
            return self.creator_platform_fee
        raise ValidationError(f"Unsupported TransactionCategory: {category}")

    def checkout_fee_for(self, kind: CheckoutKind | str) -> Decimal:
        """Fan-side fee added on top of the gross amount at checkout."""
        kind = parse_checkout_kind(kind)
        if kind is CheckoutKind.PURCHASE:
            return self.fan_platform_fee
        elif kind is CheckoutKind.GEMS:
            return self.fan_gems_fee
        raise ValidationError(f"Unsupported CheckoutKind: {kind}")

    @property
    def min_payout_cents(self) -> int:
        return to_minor_units(self.min_payout_amount)

    @property
    def max_payout_cents(self) -> int:
        return to_minor_units(self.max_payout_amount)
