"""Reportes del motor de reconciliación."""
import datetime as dt
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class MissingEntry(BaseModel):
    """Transacción de origen sin movimiento en el ledger."""
    source_type: str
    source_id: int
    group_id: Optional[int] = None
    product_id: int
    branch_id: int
    date: dt.date
    direction: str
    quantity: Decimal


class BalanceDrift(BaseModel):
    """Diferencia entre el saldo calculado desde el ledger y el snapshot persistido."""
    product_id: int
    branch_id: int
    ledger_stock: Decimal
    snapshot_stock: Optional[Decimal] = None  # None = no hay snapshot
    delta: Decimal


class SkippedSource(BaseModel):
    """Registro de origen que no se pudo convertir en evento válido."""
    source_type: str
    source_id: int
    reason: str


class DiscrepancyReport(BaseModel):
    missing: Dict[str, List[MissingEntry]] = Field(default_factory=dict)
    drifts: List[BalanceDrift] = Field(default_factory=list)
    skipped: List[SkippedSource] = Field(default_factory=list)

    @property
    def total_missing(self) -> int:
        return sum(len(v) for v in self.missing.values())

    @property
    def is_clean(self) -> bool:
        return self.total_missing == 0 and not self.drifts


class RebuildReport(BaseModel):
    dry_run: bool = False
    created: Dict[str, int] = Field(default_factory=dict)  # por source_type
    skipped: List[SkippedSource] = Field(default_factory=list)
    snapshots: int = 0
    negative_pairs: List[List[int]] = Field(default_factory=list)

    @property
    def total_created(self) -> int:
        return sum(self.created.values())


class FixReport(BaseModel):
    inserted: Dict[str, List[int]] = Field(default_factory=dict)  # source_type -> source_ids
    already_present: List[MissingEntry] = Field(default_factory=list)
    not_found: List[MissingEntry] = Field(default_factory=list)
    recomputed: int = 0

    @property
    def total_inserted(self) -> int:
        return sum(len(v) for v in self.inserted.values())
