from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class StkPushRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    order_id: Optional[str] = Field(default=None, alias="orderId")
    phone_number: Optional[str] = Field(default=None, alias="phoneNumber")
    amount: Optional[float] = None

    @field_validator("amount", mode="before")
    @classmethod
    def blank_amount_is_missing(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    id: int
    order_id: str
    phone_number: str
    amount: float
    status: str
    merchant_request_id: Optional[str] = None
    checkout_request_id: Optional[str] = None
    result_code: Optional[str] = None
    result_desc: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


def serialize_transaction(txn) -> dict:
    return TransactionOut.model_validate(txn).model_dump(mode="json", by_alias=True)
