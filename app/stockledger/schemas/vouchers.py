from typing import Annotated

from pydantic import Field, field_validator, model_validator

from app.stockledger.db.models import SIZE_CODE_MAX_LENGTH
from app.stockledger.schemas.base import ApiModel

NonEmptyStr = Annotated[str, Field(min_length=1, max_length=255)]
LocationStr = Annotated[str, Field(min_length=1, max_length=100)]


def _strip_required(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be blank")
    return value


class VoucherLinePayload(ApiModel):
    item: NonEmptyStr
    series: NonEmptyStr
    category: NonEmptyStr
    quantity: int = Field(gt=0, examples=[10])
    size_breakdown: dict[str, int] | None = Field(default=None, examples=[{"S": 3, "M": 2}])

    @field_validator("item", "series", "category")
    @classmethod
    def _strip(cls, value: str) -> str:
        return _strip_required(value)

    @field_validator("size_breakdown")
    @classmethod
    def _clean_sizes(cls, value: dict[str, int] | None) -> dict[str, int] | None:
        if value is None:
            return value
        cleaned: dict[str, int] = {}
        for size_code, size_quantity in value.items():
            size_code = size_code.strip()
            if not size_code:
                raise ValueError("size codes must not be blank")
            if len(size_code) > SIZE_CODE_MAX_LENGTH:
                raise ValueError(f"size codes must be at most {SIZE_CODE_MAX_LENGTH} characters")
            if size_quantity < 0:
                raise ValueError("size quantities must be non-negative")
            cleaned[size_code] = cleaned.get(size_code, 0) + size_quantity
        return cleaned


class IncomingVoucherRequest(ApiModel):
    actor: NonEmptyStr
    location: LocationStr
    lines: list[VoucherLinePayload] = Field(min_length=1)

    @field_validator("actor", "location")
    @classmethod
    def _strip(cls, value: str) -> str:
        return _strip_required(value)


class SaleVoucherRequest(ApiModel):
    actor: NonEmptyStr
    location: LocationStr
    customer: NonEmptyStr
    external_ref: str | None = Field(default=None, max_length=100)
    lines: list[VoucherLinePayload] = Field(min_length=1)

    @field_validator("actor", "location", "customer")
    @classmethod
    def _strip(cls, value: str) -> str:
        return _strip_required(value)

    @field_validator("external_ref")
    @classmethod
    def _strip_ref(cls, value: str | None) -> str | None:
        return (value or "").strip() or None


class TransferVoucherRequest(ApiModel):
    actor: NonEmptyStr
    from_location: LocationStr
    to_location: LocationStr
    lines: list[VoucherLinePayload] = Field(min_length=1)

    @field_validator("actor", "from_location", "to_location")
    @classmethod
    def _strip(cls, value: str) -> str:
        return _strip_required(value)

    @model_validator(mode="after")
    def _distinct_locations(self):
        if self.from_location == self.to_location:
            raise ValueError("fromLocation and toLocation must differ")
        return self


class VoucherResponse(ApiModel):
    voucher_id: str
    kind: str
    lines: int
    total_quantity: int
    trace_id: str = ""
