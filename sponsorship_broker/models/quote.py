"""Sponsorship quote validation models."""

from pydantic import BaseModel, validator

from ..core.utils import is_hex_address


class PaymentInfo(BaseModel):
    """Fee payment section of a sponsorship quote."""

    token: str

    class Config:
        extra = "allow"

    @validator("token")
    def validate_token(cls, value: str) -> str:
        """Validate the payment token is shaped like an address."""
        value = value.strip()
        if not is_hex_address(value):
            raise ValueError("paymentInfo.token must be an address")
        return value


class SponsorshipQuote(BaseModel):
    """Quote submitted for sponsorship; unknown fields are kept."""

    paymentInfo: PaymentInfo

    class Config:
        extra = "allow"
