"""
Eventos que los flujos externos (compras, producción, ventas, consignación,
opname, unloading) entregan al ledger.

Cada variante se distingue por `kind` y se valida estrictamente: el ledger
nunca recibe diccionarios sueltos.
"""
import datetime as dt
from decimal import Decimal, InvalidOperation
from typing import Annotated, ClassVar, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

from models.movement import MovementKind, SourceType


class StockEvent(BaseModel):
    """Una línea de una transacción confirmada."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    event_source_type: ClassVar[str] = ""
    fixed_direction: ClassVar[Optional[str]] = None
    group_field: ClassVar[Optional[str]] = None

    source_id: int = Field(gt=0)
    product_id: int = Field(gt=0)
    branch_id: int = Field(gt=0)
    date: dt.date
    quantity: Decimal = Field(gt=0)
    unit_cost: Optional[Decimal] = Field(default=None, ge=0)
    sale_price: Optional[Decimal] = Field(default=None, ge=0)
    note: Optional[str] = Field(default=None, max_length=255)

    @property
    def source_type(self) -> str:
        return self.event_source_type

    @property
    def direction(self) -> str:
        return self.fixed_direction

    @property
    def group_id(self) -> Optional[int]:
        if self.group_field is None:
            return None
        return getattr(self, self.group_field)

    @property
    def key(self) -> Tuple[int, int]:
        return (self.product_id, self.branch_id)


class PurchaseReceipt(StockEvent):
    kind: Literal["purchase_receipt"] = "purchase_receipt"
    event_source_type: ClassVar[str] = SourceType.PURCHASE
    fixed_direction: ClassVar[str] = MovementKind.IN
    group_field: ClassVar[str] = "purchase_id"

    purchase_id: int = Field(gt=0)
    unit_cost: Decimal = Field(ge=0)


class ProductionOutput(StockEvent):
    kind: Literal["production_output"] = "production_output"
    event_source_type: ClassVar[str] = SourceType.PRODUCTION
    fixed_direction: ClassVar[str] = MovementKind.IN
    group_field: ClassVar[str] = "production_id"

    production_id: int = Field(gt=0)
    unit_cost: Decimal = Field(ge=0)


class ProductionMaterialUse(StockEvent):
    kind: Literal["production_material"] = "production_material"
    event_source_type: ClassVar[str] = SourceType.PRODUCTION_MATERIAL
    fixed_direction: ClassVar[str] = MovementKind.OUT
    group_field: ClassVar[str] = "production_id"

    production_id: int = Field(gt=0)


class ConsignmentSaleLine(StockEvent):
    kind: Literal["consignment_sale"] = "consignment_sale"
    event_source_type: ClassVar[str] = SourceType.CONSIGNMENT
    fixed_direction: ClassVar[str] = MovementKind.OUT
    group_field: ClassVar[str] = "consignment_id"

    consignment_id: int = Field(gt=0)


class SaleLine(StockEvent):
    kind: Literal["sale_line"] = "sale_line"
    event_source_type: ClassVar[str] = SourceType.SALE
    fixed_direction: ClassVar[str] = MovementKind.OUT
    group_field: ClassVar[str] = "sale_id"

    sale_id: int = Field(gt=0)


class _SignedDifference(StockEvent):
    """Positivo => entrada, negativo => salida. quantity = |difference|."""

    difference: Decimal

    @model_validator(mode="before")
    @classmethod
    def _quantity_from_difference(cls, data):
        if isinstance(data, dict) and "quantity" not in data and data.get("difference") is not None:
            try:
                qty = abs(Decimal(str(data["difference"])))
            except (InvalidOperation, ValueError):
                return data
            data = dict(data)
            data["quantity"] = qty
        return data

    @field_validator("difference")
    @classmethod
    def _non_zero(cls, v: Decimal) -> Decimal:
        if v == 0:
            raise ValueError("difference no puede ser 0")
        return v

    @model_validator(mode="after")
    def _quantity_matches(self):
        if self.quantity != abs(self.difference):
            raise ValueError("quantity debe ser |difference|")
        return self

    @property
    def direction(self) -> str:
        return MovementKind.IN if self.difference > 0 else MovementKind.OUT


class OpnameAdjustment(_SignedDifference):
    """Ajuste por conteo físico. difference = contado - sistema."""
    kind: Literal["opname_adjustment"] = "opname_adjustment"
    event_source_type: ClassVar[str] = SourceType.OPNAME


class StockAdjustmentLine(_SignedDifference):
    """Ajuste manual a un valor absoluto. difference = nuevo - anterior."""
    kind: Literal["stock_adjustment"] = "stock_adjustment"
    event_source_type: ClassVar[str] = SourceType.ADJUSTMENT


class ConversionLeg(StockEvent):
    """Una pata de un unloading: OUT en el origen, IN en el destino."""
    kind: Literal["conversion_leg"] = "conversion_leg"
    group_field: ClassVar[str] = "transfer_id"

    transfer_id: int = Field(gt=0)
    leg: Literal["IN", "OUT"]

    @property
    def source_type(self) -> str:
        return SourceType.TRANSFER_IN if self.leg == MovementKind.IN else SourceType.TRANSFER_OUT

    @property
    def direction(self) -> str:
        return self.leg


AnyStockEvent = Annotated[
    Union[
        PurchaseReceipt,
        ProductionOutput,
        ProductionMaterialUse,
        ConsignmentSaleLine,
        SaleLine,
        OpnameAdjustment,
        StockAdjustmentLine,
        ConversionLeg,
    ],
    Field(discriminator="kind"),
]

_event_adapter = TypeAdapter(AnyStockEvent)


def parse_event(payload) -> StockEvent:
    """Valida un payload sin tipar (dict/JSON). Lanza pydantic.ValidationError."""
    if isinstance(payload, StockEvent):
        return payload
    return _event_adapter.validate_python(payload)
