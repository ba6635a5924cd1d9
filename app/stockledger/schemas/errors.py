from pydantic import BaseModel, ConfigDict, Field


class ApiErrorResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: str = Field(examples=["PRODUCT_NOT_FOUND"])
    error_kind: str = Field(alias="errorKind", examples=["PRODUCT_NOT_FOUND"])
    message: str
    details: dict | None = None
    trace_id: str | None = None


class FieldErrorItem(BaseModel):
    field: str | None = Field(default=None, examples=["lines.0.quantity"])
    message: str
    type: str
    loc: list[str | int] | None = None


class FieldErrorDetails(BaseModel):
    errors: list[FieldErrorItem]


class ApiValidationErrorResponse(ApiErrorResponse):
    details: FieldErrorDetails | dict | None = None
