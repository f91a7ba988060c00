"""
Costo representativo de un (producto, sucursal) para el snapshot.

No está claro si la vista de precios usa el costo de la última capa o el
promedio ponderado de lo que queda, así que hay dos estrategias con la misma
interfaz. Por defecto: weighted_remaining (STOCK_COST_STRATEGY).
"""
from decimal import Decimal
from typing import Optional, Sequence

from flask import current_app

from models.movement import StockMovement
from services.quantities import ZERO, to_cost, to_decimal


class CostStrategy:
    name = ""

    def representative_cost(self, layers: Sequence[StockMovement]) -> Optional[Decimal]:
        """layers: entradas del (producto, sucursal) en orden FIFO. None = sin capas."""
        raise NotImplementedError


class LatestLayerCost(CostStrategy):
    name = "latest_layer"

    def representative_cost(self, layers):
        if not layers:
            return None
        return to_cost(layers[-1].unit_cost)


class WeightedRemainingCost(CostStrategy):
    name = "weighted_remaining"

    def representative_cost(self, layers):
        if not layers:
            return None
        qty = ZERO
        value = ZERO
        for layer in layers:
            remaining = to_decimal(layer.quantity_remaining)
            if remaining <= 0:
                continue
            qty += remaining
            value += remaining * to_decimal(layer.unit_cost)
        if qty <= 0:
            # todo consumido: el último costo conocido
            return to_cost(layers[-1].unit_cost)
        return to_cost(value / qty)


COST_STRATEGIES = {
    LatestLayerCost.name: LatestLayerCost(),
    WeightedRemainingCost.name: WeightedRemainingCost(),
}

DEFAULT_COST_STRATEGY = WeightedRemainingCost.name


def get_cost_strategy(name: Optional[str] = None) -> CostStrategy:
    if name is None:
        name = current_app.config.get("STOCK_COST_STRATEGY", DEFAULT_COST_STRATEGY)
    try:
        return COST_STRATEGIES[name]
    except KeyError:
        raise ValueError(f"STOCK_COST_STRATEGY inválido: {name}") from None
