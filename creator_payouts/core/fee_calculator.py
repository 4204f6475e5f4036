"""
Fee calculator for creator revenue, fan checkout and creator payouts.

All amounts are integers in minor units. Each fee term is rounded half-up to
the minor unit independently, before summation, so results are reproducible
bit-for-bit for identical inputs.
"""
from decimal import Decimal
from typing import Optional, Protocol, Union

import structlog
from pydantic import BaseModel, ConfigDict

from creator_payouts.core.errors import TaxServiceError, ValidationError
from creator_payouts.core.fee_schedule import (
    CENTS_PER_UNIT,
    CheckoutKind,
    FeeSchedule,
    PayoutProvider,
    PurchaseProvider,
    TransactionCategory,
    parse_payout_provider,
    round_half_up,
    to_minor_units,
)

logger = structlog.get_logger(__name__)

DOMESTIC_PAYOUT_COUNTRY = "US"


class PurchaseFee(BaseModel):
    """Split of a creator-side purchase."""

    model_config = ConfigDict(frozen=True)

    amount: int
    processing_fee: int
    platform_fee: int
    total_fees: int
    net_amount: int


class CheckoutTotal(BaseModel):
    """What the fan pays at checkout."""

    model_config = ConfigDict(frozen=True)

    amount: int
    platform_fee: int
    vat_fee: int
    total_amount: int


class PayoutFee(BaseModel):
    """Split of a creator payout."""

    model_config = ConfigDict(frozen=True)

    amount: int
    processing_fee: int
    total_fee: int
    payout_amount: int


class BillingAddress(BaseModel):
    """Fan billing address used for tax calculation."""

    country: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    city: Optional[str] = None
    address: Optional[str] = None

    def cleaned(self) -> "BillingAddress":
        """Drop blank fields so the tax service only sees real values."""
        return BillingAddress(
            **{k: v for k, v in self.model_dump().items() if v not in (None, "")}
        )


class TaxOrder(BaseModel):
    """Order details sent to the tax service. Amounts in major units."""

    to_country: str
    to_state: Optional[str] = None
    to_zip: Optional[str] = None
    to_city: Optional[str] = None
    to_street: Optional[str] = None
    amount: Decimal
    shipping: Decimal = Decimal("0")


class TaxService(Protocol):
    """External tax calculation."""

    async def compute_tax(self, order: TaxOrder) -> int:
        """Return the tax to collect in minor units; raise TaxServiceError on failure."""
        ...


class FeeCalculator:
    """Pure fee computations over an injected FeeSchedule."""

    def __init__(self, schedule: FeeSchedule, tax_service: Optional[TaxService] = None):
        self.schedule = schedule
        self.tax_service = tax_service

    @staticmethod
    def _validate_amount(amount: int) -> None:
        if amount < 0:
            raise ValidationError("Amount cannot be negative")

    def compute_purchase_fee(
        self,
        gross_amount: int,
        category: Union[TransactionCategory, str],
        provider: Union[PurchaseProvider, str],
        custom_platform_fee: Optional[Decimal] = None,
    ) -> PurchaseFee:
        """
        Split a creator-side purchase into processing fee, platform fee and net.

        Args:
            gross_amount: Purchase amount in cents
            category: Revenue category (gems, subscription, paid_post, cameo)
            provider: Purchase provider that processed the payment
            custom_platform_fee: Per-creator platform fee overriding the default

        Returns:
            PurchaseFee: amount, processing_fee, platform_fee, total_fees, net_amount

        Raises:
            UnsupportedProviderError: If the provider is not supported
            ValidationError: If the amount or category is invalid
        """
        self._validate_amount(gross_amount)
        percentage, fixed = self.schedule.processing_rate(provider)
        default_platform_fee = self.schedule.platform_fee_for(category)

        gross = Decimal(gross_amount)
        processing_fee = round_half_up(gross * percentage) + to_minor_units(fixed)
        platform_rate = (
            custom_platform_fee if custom_platform_fee is not None else default_platform_fee
        )
        platform_fee = round_half_up(gross * Decimal(str(platform_rate)))
        total_fees = processing_fee + platform_fee

        return PurchaseFee(
            amount=gross_amount,
            processing_fee=processing_fee,
            platform_fee=platform_fee,
            total_fees=total_fees,
            net_amount=gross_amount - total_fees,
        )

    async def compute_checkout_total(
        self,
        gross_amount: int,
        kind: Union[CheckoutKind, str],
        billing_address: Optional[BillingAddress] = None,
    ) -> Union[CheckoutTotal, TaxServiceError]:
        """
        Compute what a fan pays: gross plus fan fee plus tax.

        A tax-service failure is returned, not raised, so the purchase flow can
        decide whether to block the transaction or fall back.
        """
        self._validate_amount(gross_amount)
        fee_rate = self.schedule.checkout_fee_for(kind)

        platform_fee = round_half_up(Decimal(gross_amount) * fee_rate)
        subtotal = gross_amount + platform_fee
        vat_fee = 0

        address = billing_address.cleaned() if billing_address else None
        if address is not None and address.country:
            if self.tax_service is None:
                raise ValidationError("Tax service is not configured")
            order = TaxOrder(
                to_country=address.country,
                to_state=address.state,
                to_zip=address.zip,
                to_city=address.city,
                to_street=address.address,
                amount=Decimal(subtotal) / CENTS_PER_UNIT,
            )
            try:
                vat_fee = await self.tax_service.compute_tax(order)
            except TaxServiceError as e:
                logger.warning(
                    "checkout_tax_failed",
                    country=address.country,
                    detail=e.detail,
                    status_code=e.status_code,
                )
                return e

        return CheckoutTotal(
            amount=gross_amount,
            platform_fee=platform_fee,
            vat_fee=vat_fee,
            total_amount=subtotal + vat_fee,
        )

    def compute_payout_fee(
        self,
        payout_amount: int,
        provider: Union[PayoutProvider, str],
        country: str,
    ) -> PayoutFee:
        """
        Compute the provider fee taken out of a creator payout.

        Domestic (US) payouts pay a flat fee; international payouts pay a
        percentage of the amount.
        """
        self._validate_amount(payout_amount)
        provider = parse_payout_provider(provider)

        if provider is PayoutProvider.PAYPAL:
            if (country or "").upper() == DOMESTIC_PAYOUT_COUNTRY:
                processing_fee = to_minor_units(self.schedule.paypal_fee_payout_us_fixed)
            else:
                processing_fee = round_half_up(
                    Decimal(payout_amount)
                    * self.schedule.paypal_fee_payout_international_percentage
                )
        else:
            raise ValidationError(f"Unsupported payout provider: {provider}")

        return PayoutFee(
            amount=payout_amount,
            processing_fee=processing_fee,
            total_fee=processing_fee,
            payout_amount=payout_amount - processing_fee,
        )

    def compute_referral_fee(self, amount: int) -> int:
        """Referral cut of a creator's revenue, in cents."""
        self._validate_amount(amount)
        return round_half_up(Decimal(amount) * self.schedule.creator_referral_fee)
