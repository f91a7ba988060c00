"""
Errores del ledger de stock.

Todos heredan de ValueError (igual que los errores de services.stock de antes),
así los flujos que ya hacían `except ValueError` siguen funcionando.
"""
from decimal import Decimal
from typing import Optional


class StockError(ValueError):
    status_code = 400

    def to_dict(self) -> dict:
        return {"type": type(self).__name__}


class InvalidQuantity(StockError):
    def __init__(self, qty=None):
        self.qty = qty
        super().__init__(f"Cantidad inválida ({qty}). Debe ser > 0")

    def to_dict(self) -> dict:
        return {"type": "InvalidQuantity", "qty": self.qty}


class InvalidPrice(StockError):
    def __init__(self, field: str, value=None):
        self.field = field
        self.value = value
        super().__init__(f"{field} inválido ({value}). Debe ser >= 0")

    def to_dict(self) -> dict:
        return {"type": "InvalidPrice", "field": self.field, "value": self.value}


class _ShortfallError(StockError):
    status_code = 409
    label = "Stock insuficiente"

    def __init__(self, *, product_id: int, branch_id: int, requested: Decimal, available: Decimal):
        self.product_id = product_id
        self.branch_id = branch_id
        self.requested = requested
        self.available = available
        self.shortfall = requested - available
        super().__init__(
            f"{self.label}. Disponible={available} requerido={requested} faltante={self.shortfall}"
        )

    def to_dict(self) -> dict:
        return {
            "type": type(self).__name__,
            "product_id": self.product_id,
            "branch_id": self.branch_id,
            "requested": self.requested,
            "available": self.available,
            "shortfall": self.shortfall,
        }


class InsufficientStock(_ShortfallError):
    label = "Stock insuficiente"


class InsufficientAvailable(_ShortfallError):
    label = "Stock disponible insuficiente para reservar"


class DensityNotConfigured(StockError):
    def __init__(self, *, product_id: int, product_name: str):
        self.product_id = product_id
        self.product_name = product_name
        super().__init__(
            f'Producto "{product_name}" no tiene density factor configurado. '
            "Configúralo en el maestro de productos antes de convertir."
        )

    def to_dict(self) -> dict:
        return {"type": "DensityNotConfigured", "product_id": self.product_id, "product_name": self.product_name}


class ConversionNotSupported(StockError):
    def __init__(self, message: str):
        super().__init__(message)


class DuplicateTransferPair(StockError):
    def __init__(self, source_product_id: int, target_product_id: int):
        self.source_product_id = source_product_id
        self.target_product_id = target_product_id
        super().__init__(
            f"Par origen/destino repetido en el mismo unloading ({source_product_id} -> {target_product_id})"
        )

    def to_dict(self) -> dict:
        return {
            "type": "DuplicateTransferPair",
            "source_product_id": self.source_product_id,
            "target_product_id": self.target_product_id,
        }


class DuplicateSourceReference(StockError):
    status_code = 409

    def __init__(self, source_type: str, source_id: int):
        self.source_type = source_type
        self.source_id = source_id
        super().__init__(f"Ya existe un movimiento para {source_type} #{source_id}")

    def to_dict(self) -> dict:
        return {"type": "DuplicateSourceReference", "source_type": self.source_type, "source_id": self.source_id}


class LayerInUse(StockError):
    status_code = 409

    def __init__(self, *, movement_id: int, consumed: Decimal):
        self.movement_id = movement_id
        self.consumed = consumed
        super().__init__(
            f"La entrada #{movement_id} ya fue consumida ({consumed}). "
            "Revierte primero las salidas que la usaron."
        )

    def to_dict(self) -> dict:
        return {"type": "LayerInUse", "movement_id": self.movement_id, "consumed": self.consumed}


class ReconciliationDrift(StockError):
    status_code = 409

    def __init__(self, drifts: list):
        self.drifts = drifts
        super().__init__(f"Snapshot desalineado con el ledger en {len(drifts)} producto(s)/sucursal(es)")

    def to_dict(self) -> dict:
        return {"type": "ReconciliationDrift", "drifts": self.drifts}


class RebuildInProgress(StockError):
    status_code = 423

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or "Hay un rebuild de stock en curso. Intenta de nuevo al terminar.")


class ProductNotFound(StockError):
    status_code = 404

    def __init__(self, product_id):
        self.product_id = product_id
        super().__init__(f"Producto no encontrado ({product_id})")


class MovementNotFound(StockError):
    status_code = 404

    def __init__(self, source_type: str, source_id=None, group_id=None):
        self.source_type = source_type
        self.source_id = source_id
        self.group_id = group_id
        ref = source_id if source_id is not None else f"grupo {group_id}"
        super().__init__(f"No hay movimientos para {source_type} #{ref}")


class TransferNotFound(StockError):
    status_code = 404

    def __init__(self, transfer_id: int):
        self.transfer_id = transfer_id
        super().__init__(f"Unloading no encontrado ({transfer_id})")
