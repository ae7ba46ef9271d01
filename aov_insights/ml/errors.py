"""
Order value analysis errors

InputError and ComputationError abort a run. InsufficientDataWarning is never
raised: it is attached to an otherwise valid result so callers can render an
empty state instead of reading zeros as "nothing found".
"""
from dataclasses import dataclass
from typing import Optional


class AOVAnalysisError(Exception):
    """Base class for order value analysis failures"""

    reason = "analysis_error"


class InputError(AOVAnalysisError):
    """Malformed order record; identifies the offending order"""

    reason = "invalid_input"

    def __init__(self, message: str, order_id: Optional[str] = None, index: Optional[int] = None):
        self.order_id = order_id
        self.index = index
        location = []
        if order_id:
            location.append(f"order {order_id}")
        if index is not None:
            location.append(f"index {index}")
        if location:
            message = f"{message} ({', '.join(location)})"
        super().__init__(message)


class ComputationError(AOVAnalysisError):
    """An internal invariant did not hold; indicates a logic bug"""

    reason = "computation_error"


class AnalysisCancelled(AOVAnalysisError):
    """Cancellation token or deadline fired between pipeline stages"""

    reason = "cancelled"


@dataclass(frozen=True)
class InsufficientDataWarning:
    """Low-signal marker carried on a successful result"""

    code: str
    message: str

    NO_ORDERS = "no_orders"
    FEW_ORDERS = "few_orders"
    NO_MULTI_ITEM_ORDERS = "no_multi_item_orders"
    NO_AFFINITY_PAIRS = "no_affinity_pairs"

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}
