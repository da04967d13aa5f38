"""
Fee calculation for recorded payments.

Splits a gross payment between the payment processor, the platform operator
and the merchant:

    processing_fee = round(amount * processor_rate) + processor_fixed_fee
    platform_fee   = round(amount * platform_rate)
    net_amount     = amount - processing_fee - platform_fee

Each component is rounded half-up to whole cents before the subtraction, so
processing_fee + platform_fee + net_amount == amount exactly.
"""

from decimal import Decimal

from pydantic import BaseModel, Field

from core.exceptions import InvalidAmountError
from core.models.payment import PaymentMethod
from utils.money import apply_rate, from_cents


class ProcessorFee(BaseModel):
    """Processor pricing for one payment method: percentage plus fixed fee."""

    rate: Decimal = Field(..., ge=0, le=1)
    fixed_fee_cents: int = Field(0, ge=0)

    model_config = {"frozen": True}


class FeeSchedule(BaseModel):
    """
    Fee configuration.

    processor_rate/processor_fixed_fee_cents apply to every method unless
    method_overrides names it. No method is exempt by default; a deployment
    that does not route cash or checks through the processor opts out with
    an explicit override.
    """

    processor_rate: Decimal = Field(default=Decimal("0.029"), ge=0, le=1)
    processor_fixed_fee_cents: int = Field(default=30, ge=0)
    platform_rate: Decimal = Field(default=Decimal("0.02"), ge=0, le=1)
    method_overrides: dict[PaymentMethod, ProcessorFee] = Field(default_factory=dict)

    model_config = {"frozen": True}

    def processor_fee_for(self, method: PaymentMethod) -> ProcessorFee:
        override = self.method_overrides.get(method)
        if override is not None:
            return override
        return ProcessorFee(rate=self.processor_rate, fixed_fee_cents=self.processor_fixed_fee_cents)


class FeeBreakdown(BaseModel):
    """Result of calculate_fees. All values in cents."""

    amount_cents: int
    processing_fee_cents: int
    platform_fee_cents: int
    net_amount_cents: int

    model_config = {"frozen": True}

    @property
    def processing_fee(self) -> Decimal:
        return from_cents(self.processing_fee_cents)

    @property
    def platform_fee(self) -> Decimal:
        return from_cents(self.platform_fee_cents)

    @property
    def net_amount(self) -> Decimal:
        return from_cents(self.net_amount_cents)


def calculate_fees(
    amount_cents: int,
    method: PaymentMethod,
    schedule: FeeSchedule | None = None,
) -> FeeBreakdown:
    """
    Compute the fee breakdown for a gross payment.

    Pure function: same inputs always give the same breakdown.

    Args:
        amount_cents: Gross payment in cents
        method: Payment method (selects processor pricing)
        schedule: Fee configuration (defaults to FeeSchedule())

    Returns:
        FeeBreakdown whose three parts sum to amount_cents

    Raises:
        InvalidAmountError: If amount_cents <= 0
    """
    if amount_cents <= 0:
        raise InvalidAmountError(amount_cents)

    schedule = schedule or FeeSchedule()
    processor = schedule.processor_fee_for(method)

    processing_fee = apply_rate(amount_cents, processor.rate) + processor.fixed_fee_cents
    platform_fee = apply_rate(amount_cents, schedule.platform_rate)

    return FeeBreakdown(
        amount_cents=amount_cents,
        processing_fee_cents=processing_fee,
        platform_fee_cents=platform_fee,
        net_amount_cents=amount_cents - processing_fee - platform_fee,
    )
