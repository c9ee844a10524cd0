"""Product type catalog: which productConfig keys each product type accepts."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class FieldOption:
    value: str
    label_ar: str
    label_en: str


@dataclass(frozen=True)
class ProductField:
    id: str
    type: str  # text | number | select | radio | checkbox
    label_ar: str
    label_en: str
    required: bool = True
    options: tuple[FieldOption, ...] = ()
    depends_on: Optional[tuple[str, tuple[str, ...]]] = None
    unit: Optional[str] = None


@dataclass(frozen=True)
class ProductType:
    id: str
    name_ar: str
    name_en: str
    fields: tuple[ProductField, ...] = field(default_factory=tuple)


def _options(*items: tuple[str, str, str]) -> tuple[FieldOption, ...]:
    return tuple(FieldOption(value=v, label_ar=ar, label_en=en) for v, ar, en in items)


PRODUCT_TYPES: tuple[ProductType, ...] = (
    ProductType(
        id="belts",
        name_ar="الاحزمة",
        name_en="Belts",
        fields=(
            ProductField(
                id="belt_type", type="select", label_ar="نوع الحزام", label_en="Belt Type",
                options=_options(("cups", "أكواب", "Cups"), ("light_paper", "ورقي خفيف", "Light Paper")),
            ),
            ProductField(
                id="paper_size", type="select", label_ar="حجم الورق", label_en="Paper Size",
                options=_options(("250", "250", "250"), ("300", "300", "300")),
                depends_on=("belt_type", ("cups",)),
            ),
            ProductField(
                id="belt_length_type", type="select", label_ar="طول الحزام", label_en="Belt Length",
                options=_options(("short_30x45", "قصير (30×45)", "Short (30×45)"), ("long", "طويل", "Long")),
                depends_on=("belt_type", ("light_paper",)),
            ),
            ProductField(
                id="adhesive", type="select", label_ar="اللاصق", label_en="Adhesive",
                options=_options(("with", "مع", "With"), ("without", "بدون", "Without")),
                depends_on=("belt_type", ("light_paper",)),
            ),
            ProductField(
                id="adhesive_location", type="select", label_ar="مكان اللاصق", label_en="Adhesive Location",
                options=_options(("inside", "داخل المقاس", "Inside Size"), ("outside", "خارج المقاس", "Outside Size")),
                depends_on=("adhesive", ("with",)),
            ),
            ProductField(id="belt_length", type="number", label_ar="الطول", label_en="Length", unit="cm"),
            ProductField(id="belt_width", type="number", label_ar="العرض", label_en="Width", unit="cm"),
        ),
    ),
    ProductType(
        id="ribbons",
        name_ar="الشرايط",
        name_en="Ribbons",
        fields=(
            ProductField(
                id="ribbon_type", type="select", label_ar="نوع الشريط", label_en="Ribbon Type",
                options=_options(("satin", "ستان", "Satin"), ("fabric", "قماش", "Fabric")),
            ),
            ProductField(
                id="ribbon_size", type="select", label_ar="المقاس", label_en="Size",
                options=_options(("narrow", "نحيف", "Narrow"), ("normal", "عادي", "Normal"), ("wide", "عريض", "Wide")),
            ),
            ProductField(
                id="ribbon_color", type="select", label_ar="اللون", label_en="Color",
                options=_options(("white", "ابيض", "White"), ("colored", "ملون", "Colored")),
            ),
        ),
    ),
    ProductType(id="stickers", name_ar="الاستيكرات", name_en="Stickers"),
    ProductType(id="custom", name_ar="مخصص", name_en="Custom"),
)

_BY_ID: dict[str, ProductType] = {product.id: product for product in PRODUCT_TYPES}


def get_product_type(product_type_id: Optional[str]) -> Optional[ProductType]:
    if not product_type_id:
        return None
    return _BY_ID.get(product_type_id)


def product_label(product_type_id: Optional[str]) -> str:
    """Human label used in external item names."""
    product = get_product_type(product_type_id)
    if product is None:
        return product_type_id or "Order"
    return f"{product.name_en} {product.name_ar}"


def should_show_field(product_field: ProductField, config: dict[str, Any]) -> bool:
    if product_field.depends_on is None:
        return True
    parent_id, allowed = product_field.depends_on
    return config.get(parent_id) in allowed


def missing_config_fields(product_type_id: Optional[str], config: Optional[dict[str, Any]]) -> list[str]:
    """Required, visible fields of the product type that have no value in ``config``."""
    product = get_product_type(product_type_id)
    if product is None:
        return []
    values = config or {}
    return [
        f.id
        for f in product.fields
        if f.required and should_show_field(f, values) and values.get(f.id) in (None, "")
    ]


def catalog_as_dict() -> list[dict[str, Any]]:
    return [
        {
            "id": product.id,
            "nameAr": product.name_ar,
            "nameEn": product.name_en,
            "fields": [
                {
                    "id": f.id,
                    "type": f.type,
                    "labelAr": f.label_ar,
                    "labelEn": f.label_en,
                    "required": f.required,
                    "options": [
                        {"value": o.value, "labelAr": o.label_ar, "labelEn": o.label_en} for o in f.options
                    ],
                    "dependsOn": (
                        {"fieldId": f.depends_on[0], "value": list(f.depends_on[1])} if f.depends_on else None
                    ),
                    "unit": f.unit,
                }
                for f in product.fields
            ],
        }
        for product in PRODUCT_TYPES
    ]
