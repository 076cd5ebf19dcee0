"""Payment card and gateway configuration models."""

import re
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

# Years ahead of the current year a card expiry may be set to.
MAX_EXPIRY_YEARS_AHEAD = 10

SUPPORTED_CARD_TYPES = ("visa", "mastercard", "amex", "discover")


def luhn_checksum_valid(number: str) -> bool:
    total = 0
    for position, char in enumerate(reversed(number)):
        digit = int(char)
        if position % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


class PaymentCard(BaseModel):
    """Credit card the customer pays with. Never persisted."""
    card_type: str
    holder_first_name: str = Field(min_length=1)
    holder_last_name: str = Field(min_length=1)
    number: str
    expiry_month: int = Field(ge=1, le=12)
    expiry_year: int
    cvn: str

    @field_validator("card_type")
    @classmethod
    def normalize_card_type(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in SUPPORTED_CARD_TYPES:
            raise ValueError(f"unsupported card type '{value}'")
        return value

    @field_validator("number")
    @classmethod
    def validate_number(cls, value: str) -> str:
        digits = re.sub(r"[\s-]", "", value)
        if not digits.isdigit() or not 12 <= len(digits) <= 19:
            raise ValueError("card number must contain 12 to 19 digits")
        if not luhn_checksum_valid(digits):
            raise ValueError("card number failed the checksum")
        return digits

    @field_validator("expiry_year")
    @classmethod
    def validate_expiry_year(cls, value: int) -> int:
        current_year = datetime.now(timezone.utc).year
        if not current_year <= value <= current_year + MAX_EXPIRY_YEARS_AHEAD:
            raise ValueError(
                f"expiry year must be between {current_year} and "
                f"{current_year + MAX_EXPIRY_YEARS_AHEAD}"
            )
        return value

    @field_validator("cvn")
    @classmethod
    def validate_cvn(cls, value: str) -> str:
        value = value.strip()
        if not value.isdigit() or not 3 <= len(value) <= 4:
            raise ValueError("cvn must be 3 or 4 digits")
        return value

    @model_validator(mode="after")
    def validate_not_expired(self) -> "PaymentCard":
        now = datetime.now(timezone.utc)
        if (self.expiry_year, self.expiry_month) < (now.year, now.month):
            raise ValueError("card has expired")
        return self

    @property
    def masked_number(self) -> str:
        return f"****{self.number[-4:]}"

    def __repr__(self) -> str:
        return f"PaymentCard({self.card_type}, {self.masked_number})"

    __str__ = __repr__


class PaymentConfiguration(BaseModel):
    """Merchant credentials for the payment gateway."""
    client_id: str = Field(min_length=1)
    client_secret: str = Field(min_length=1)
    account_type: Literal["sandbox", "live"] = "sandbox"
