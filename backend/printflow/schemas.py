"""Pydantic schemas for API and webhook payloads."""
from __future__ import annotations

from datetime import date
from typing import Annotated, Any, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

Department = Literal["sales", "design", "production", "admin"]
OrderStatusValue = Literal["pending-design", "pending-production", "in-production", "completed"]


class CamelModel(BaseModel):
    """Accepts and emits the camelCase names used in stored documents."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self, **kwargs: Any) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True, **kwargs)


# Custom fields (tagged union on `type`)
class CustomFieldBase(CamelModel):
    id: str = Field(default_factory=lambda: uuid4().hex)
    name: str = Field(min_length=1)
    added_by: Optional[str] = None
    added_by_role: Optional[Department] = None
    added_at: Optional[str] = None


class TextCustomField(CustomFieldBase):
    type: Literal["text"]
    value: str = ""


class NumberCustomField(CustomFieldBase):
    type: Literal["number"]
    value: Union[int, float]


class DateCustomField(CustomFieldBase):
    type: Literal["date"]
    value: date


class SelectCustomField(CustomFieldBase):
    type: Literal["select"]
    value: str
    options: list[str] = Field(min_length=1)

    @model_validator(mode="after")
    def _value_in_options(self) -> "SelectCustomField":
        if self.value not in self.options:
            raise ValueError(f"value {self.value!r} is not one of the select options")
        return self


CustomField = Annotated[
    Union[TextCustomField, NumberCustomField, DateCustomField, SelectCustomField],
    Field(discriminator="type"),
]


# Orders
class OrderCreate(CamelModel):
    order_number: str = Field(min_length=1)
    order_type: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    product_type: str = Field(min_length=1)
    product_config: dict[str, Any] = Field(default_factory=dict)
    quantity: int = Field(gt=0)
    delivery_date: date
    sales_notes: str = ""
    assigned_designer_id: Optional[str] = None
    assigned_designer_name: Optional[str] = None
    custom_fields: list[CustomField] = Field(default_factory=list)


class OrderUpdate(CamelModel):
    order_number: Optional[str] = Field(None, min_length=1)
    order_type: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    product_type: Optional[str] = Field(None, min_length=1)
    product_config: Optional[dict[str, Any]] = None
    quantity: Optional[int] = Field(None, gt=0)
    delivery_date: Optional[date] = None
    sales_notes: Optional[str] = None
    design_notes: Optional[str] = None
    production_notes: Optional[str] = None
    assigned_designer_id: Optional[str] = None
    assigned_designer_name: Optional[str] = None
    custom_fields: Optional[list[CustomField]] = None


class DesignSubmission(CamelModel):
    design_file_url: str = Field(min_length=1)
    dimensions: str = Field(min_length=1)
    colors: str = Field(min_length=1)
    material: str = Field(min_length=1)
    finishing: str = Field(min_length=1)
    design_notes: Optional[str] = None
    printing_type: Optional[Literal["thermal", "silkscreen"]] = None
    thermal_sub_type: Optional[Literal["sugaris", "sublimation"]] = None
    custom_fields: list[CustomField] = Field(default_factory=list)

    @model_validator(mode="after")
    def _sub_type_only_for_thermal(self) -> "DesignSubmission":
        if self.thermal_sub_type and self.printing_type != "thermal":
            raise ValueError("thermalSubType is only allowed when printingType is 'thermal'")
        return self


class StatusChange(CamelModel):
    status: Literal["in-production", "completed"]
    production_notes: Optional[str] = None


# Sub-items
class SubItemCreate(CamelModel):
    product_type: str = Field(min_length=1)
    product_config: dict[str, Any] = Field(default_factory=dict)
    quantity: int = Field(gt=0)
    sales_notes: Optional[str] = None
    modifications: Optional[str] = None
    file_links: list[str] = Field(default_factory=list)


class SubItemDesign(CamelModel):
    design_file_url: Optional[str] = None
    design_notes: Optional[str] = None
    file_links: Optional[list[str]] = None


class SubItemStatusChange(CamelModel):
    status: OrderStatusValue


# Monday integration
class MondaySettingsUpdate(CamelModel):
    enabled: Optional[bool] = None
    api_token: Optional[str] = None
    design_board_id: Optional[str] = None
    production_board_id: Optional[str] = None
    auto_sync: Optional[bool] = None
    monday_webhook_secret: Optional[str] = None


class MondayConnectionTest(CamelModel):
    api_token: Optional[str] = None


class DesignerBoardLink(CamelModel):
    monday_board_id: str = Field(min_length=1)


class MondayNoteCreate(CamelModel):
    body: str = Field(min_length=1)


class MondaySyncRequest(CamelModel):
    target_board_id: Optional[str] = None


# Salla e-commerce webhook
class SallaStatus(BaseModel):
    model_config = ConfigDict(extra="allow")
    slug: Optional[str] = None
    name: Optional[str] = None


class SallaItem(BaseModel):
    model_config = ConfigDict(extra="allow")
    name: Optional[str] = ""
    sku: Any = None
    quantity: Any = 0
    price: Any = None


class SallaOrderData(BaseModel):
    model_config = ConfigDict(extra="allow")
    id: Any = None
    reference_id: Any = None
    draft: Optional[bool] = False
    status: Optional[SallaStatus] = None
    items: list[SallaItem] = Field(default_factory=list)
    date: Optional[dict[str, Any]] = None
    customer: dict[str, Any] = Field(default_factory=dict)
    amounts: dict[str, Any] = Field(default_factory=dict)
    currency: Optional[str] = None
    payment_method: Optional[str] = None


class SallaWebhook(BaseModel):
    model_config = ConfigDict(extra="allow")
    event: str
    merchant: Any = None
    data: SallaOrderData = Field(default_factory=SallaOrderData)
