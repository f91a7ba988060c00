from .events import (
    ConsignmentSaleLine,
    ConversionLeg,
    OpnameAdjustment,
    ProductionMaterialUse,
    ProductionOutput,
    PurchaseReceipt,
    SaleLine,
    StockAdjustmentLine,
    StockEvent,
    parse_event,
)
from .reports import (
    BalanceDrift,
    DiscrepancyReport,
    FixReport,
    MissingEntry,
    RebuildReport,
    SkippedSource,
)
