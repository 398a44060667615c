"""
Bill-of-materials arithmetic: how many portions of a product the current
stock can still produce. Pure functions only; callers load the data.
"""
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional
from uuid import UUID


@dataclass(frozen=True)
class Requirement:
    """One recipe line: quantity of an ingredient consumed per portion."""
    ingredient_id: UUID
    ingredient_name: str
    quantity_required: Decimal


@dataclass(frozen=True)
class StockLevel:
    """The part of an inventory snapshot the calculator reads."""
    item_id: Optional[UUID]
    item_name: str
    quantity_available: Decimal


@dataclass(frozen=True)
class LinePortions:
    requirement: Requirement
    stock: Optional[StockLevel]
    portions: int

    @property
    def matched_by_name(self) -> bool:
        return self.stock is not None and self.stock.item_id != self.requirement.ingredient_id


def _index(stock_levels: Iterable[StockLevel]):
    by_id: Dict[UUID, StockLevel] = {}
    by_name: Dict[str, StockLevel] = {}
    for stock in stock_levels:
        if stock.item_id is not None:
            by_id.setdefault(stock.item_id, stock)
        if stock.item_name:
            by_name.setdefault(stock.item_name.strip().lower(), stock)
    return by_id, by_name


def _portions(quantity_available: Decimal, quantity_required: Decimal) -> int:
    if quantity_required <= 0:
        return 0
    return max(0, math.floor(quantity_available / quantity_required))


def line_portions(
    requirements: Iterable[Requirement],
    stock_levels: Iterable[StockLevel],
    name_fallback: bool = True,
) -> List[LinePortions]:
    """Per-line portions. A line with no matching stock record yields 0."""
    by_id, by_name = _index(stock_levels)
    result = []
    for req in requirements:
        stock = by_id.get(req.ingredient_id)
        if stock is None and name_fallback and req.ingredient_name:
            stock = by_name.get(req.ingredient_name.strip().lower())
        portions = 0 if stock is None else _portions(stock.quantity_available, req.quantity_required)
        result.append(LinePortions(req, stock, portions))
    return result


def available_portions(
    requirements: Iterable[Requirement],
    stock_levels: Iterable[StockLevel],
    name_fallback: bool = True,
) -> int:
    """
    Minimum over lines of floor(stock / required). A recipe with no lines
    yields 0: nothing to consume does not make a product producible.
    """
    return portions_from_lines(line_portions(requirements, stock_levels, name_fallback))


def portions_from_lines(lines: List[LinePortions]) -> int:
    if not lines:
        return 0
    return max(0, min(line.portions for line in lines))


def limiting_line(lines: List[LinePortions]) -> Optional[LinePortions]:
    """The line that caps output (first one on ties)."""
    if not lines:
        return None
    return min(lines, key=lambda line: line.portions)
