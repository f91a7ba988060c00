"""Cuerpos JSON aceptados por las rutas de stock."""
import datetime as dt
from decimal import Decimal
from typing import Annotated, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator

from models.movement import SourceType


class _Body(BaseModel):
    model_config = ConfigDict(extra="forbid")


def _known_source_type(value: str) -> str:
    if value not in SourceType.ALL:
        raise ValueError(f"source_type inválido: {value}")
    return value


KnownSourceType = Annotated[str, AfterValidator(_known_source_type)]


class ReservationRequest(_Body):
    product_id: int = Field(gt=0)
    branch_id: int = Field(gt=0)
    qty: Decimal = Field(gt=0)
    # sólo commit
    date: Optional[dt.date] = None
    sale_price: Optional[Decimal] = Field(default=None, ge=0)
    source_type: Optional[KnownSourceType] = None
    source_id: Optional[int] = None
    source_group_id: Optional[int] = None
    note: Optional[str] = Field(default=None, max_length=255)


class ReverseRequest(_Body):
    source_type: KnownSourceType
    source_id: Optional[int] = None
    group_id: Optional[int] = None

    @model_validator(mode="after")
    def _one_reference(self):
        if self.source_id is None and self.group_id is None:
            raise ValueError("source_id o group_id requerido")
        return self


class ConversionItem(_Body):
    source_product_id: int = Field(gt=0)
    target_product_id: int = Field(gt=0)
    input_quantity: Decimal = Field(gt=0)
    note: Optional[str] = Field(default=None, max_length=255)


class ConversionRequest(_Body):
    branch_id: int = Field(gt=0)
    date: dt.date
    items: List[ConversionItem] = Field(min_length=1)


class RebuildRequest(_Body):
    mode: Literal["check", "reset"] = "check"


class PairRequest(_Body):
    product_id: int = Field(gt=0)
    branch_id: int = Field(gt=0)


class PriceUpdateRequest(_Body):
    product_id: int = Field(gt=0)
    # None o 0 => todas las sucursales
    branch_id: Optional[int] = Field(default=None, ge=0)
    unit_cost: Decimal = Field(ge=0)
    sale_price: Decimal = Field(ge=0)


class AdjustRequest(_Body):
    product_id: int = Field(gt=0)
    branch_id: int = Field(gt=0)
    new_qty: Decimal = Field(ge=0)
    date: Optional[dt.date] = None
    unit_cost: Optional[Decimal] = Field(default=None, ge=0)
    note: Optional[str] = Field(default=None, max_length=255)
