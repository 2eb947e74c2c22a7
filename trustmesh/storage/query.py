"""
Document Query Model

Filter / order descriptions evaluated client-side by every backend, with
hosted document-store semantics:

- Inequality (``!=``) and range filters only match documents that have the
  field. A top-level-only query ``securityLevel != "none"`` therefore skips
  operation records, which never carry a security level.
- Ordering on a field drops documents without that field.
- Values of incomparable types never match a range filter.
"""

from __future__ import annotations

import operator
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

Document = Dict[str, Any]


class FilterOp(str, Enum):
    """Comparison operators supported in field filters."""
    EQ = "=="
    NE = "!="
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="


_COMPARATORS: Dict[FilterOp, Callable[[Any, Any], bool]] = {
    FilterOp.EQ: operator.eq,
    FilterOp.NE: operator.ne,
    FilterOp.LT: operator.lt,
    FilterOp.LE: operator.le,
    FilterOp.GT: operator.gt,
    FilterOp.GE: operator.ge,
}


@dataclass(frozen=True, slots=True)
class FieldFilter:
    """Single `field op value` predicate."""

    field: str
    op: FilterOp
    value: Any

    def matches(self, doc: Document) -> bool:
        if self.field not in doc:
            return False
        try:
            return bool(_COMPARATORS[self.op](doc[self.field], self.value))
        except TypeError:
            return False


@dataclass(frozen=True, slots=True)
class OrderBy:
    field: str
    descending: bool = False


@dataclass(frozen=True, slots=True)
class Query:
    """
    Collection query.

    Example:
        query = (
            Query("quantum_sessions")
            .where("securityLevel", "!=", "none")
            .ordered("createdTime", descending=True)
        )
        visible = query.apply(documents)
    """

    collection: str
    filters: Tuple[FieldFilter, ...] = ()
    order_by: Optional[OrderBy] = None

    def where(self, field: str, op: str, value: Any) -> Query:
        return replace(self, filters=self.filters + (FieldFilter(field, FilterOp(op), value),))

    def ordered(self, field: str, descending: bool = False) -> Query:
        return replace(self, order_by=OrderBy(field, descending))

    def matches(self, doc: Document) -> bool:
        if self.order_by is not None and self.order_by.field not in doc:
            return False
        return all(f.matches(doc) for f in self.filters)

    def apply(self, docs: Iterable[Document]) -> List[Document]:
        """Filter then sort. Sorting is stable for equal keys."""
        selected = [doc for doc in docs if self.matches(doc)]
        if self.order_by is not None:
            key = self.order_by.field
            selected.sort(key=lambda doc: doc[key], reverse=self.order_by.descending)
        return selected
