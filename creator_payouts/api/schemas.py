"""
Pydantic schemas for API request/response models.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from creator_payouts.core.fee_calculator import BillingAddress


class PayoutRecordResponse(BaseModel):
    """A payout record as stored."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Payout record id (PayPal sender_batch_id)")
    profile_id: int = Field(..., description="Creator profile id")
    amount: int = Field(..., description="Amount sent to the creator in cents")
    processing_fee: int = Field(..., description="Provider fee in cents")
    status: str = Field(..., description="initialized/submitted/pending/successful/failed")
    external_transaction_ref: Optional[str] = Field(
        default=None, description="PayPal payout_batch_id"
    )
    error: Optional[str] = Field(default=None, description="Provider error detail if failed")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")


class ExecutePayoutResponse(BaseModel):
    """Response schema for a payout trigger."""

    status: str = Field(..., description="submitted or skipped")
    message: Optional[str] = Field(default=None, description="Status message")
    payout: Optional[PayoutRecordResponse] = Field(default=None, description="Payout record")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"status": "skipped", "message": "Payout threshold not met", "payout": None}
            ]
        }
    }


class PayoutSummaryResponse(BaseModel):
    """Response schema for a profile's payout schedule and period allowance."""

    model_config = ConfigDict(from_attributes=True)

    profile_id: int
    mode: str = Field(..., description="automatic or manual")
    threshold: int = Field(..., description="Automatic payout threshold in cents")
    max_payout: int = Field(..., description="Payout ceiling for the period in cents")
    period_total: int = Field(..., description="Paid out since the period started, in cents")
    remaining: int = Field(..., description="Allowance left for the period, in cents")
    balance: int = Field(..., description="Current balance in cents")


class PayoutLogsResponse(BaseModel):
    """Response schema for a profile's payout history."""

    payouts: List[PayoutRecordResponse]
    total: int = Field(..., description="All payout records for the profile")
    limit: int
    offset: int


class CheckoutRequest(BaseModel):
    """Request schema for computing a fan checkout total."""

    amount: int = Field(..., ge=0, description="Purchase amount in cents")
    kind: str = Field(default="purchase", description="purchase or gems")
    billing_address: Optional[BillingAddress] = Field(
        default=None, description="Billing address for tax calculation"
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "amount": 1000,
                    "kind": "purchase",
                    "billing_address": {"country": "US", "state": "CA", "zip": "94103"},
                }
            ]
        }
    }


class CheckoutResponse(BaseModel):
    """Response schema for a checkout total. Amounts in cents."""

    model_config = ConfigDict(from_attributes=True)

    amount: int
    platform_fee: int
    vat_fee: int
    total_amount: int


class WebhookResponse(BaseModel):
    """Response schema for webhook processing."""

    status: str = Field(..., description="processed or duplicate")
    event_id: str = Field(..., description="PayPal event ID")
    payout_status: Optional[str] = Field(default=None, description="Payout status after the event")


class HealthCheckResponse(BaseModel):
    """Response schema for health checks."""

    status: str = Field(..., description="Overall health status (healthy/degraded/unhealthy)")
    checks: Optional[Dict[str, Any]] = Field(default=None, description="Individual service checks")
