from .activity import (
    ActivityDerivedState,
    ActivityDescriptor,
    ActivityStatus,
    ActivityType,
    get_activity_derived_state,
    get_activity_descriptor,
    get_activity_link_url,
)
from .approval import ApprovalManager, ApprovalState, calculate_gas_margin, compute_approval_state
from .expiry import ExpiredOrdersSweeper
from .mempool_watcher import CancelReplaceWatcher
from .order_status import OrderStatusPoller
from .receipts import ReceiptPoller, should_check
from .submission import OrderSubmissionPipeline, SwapIntent, build_summary, build_unsigned_order
from .unfillable import UnfillableOrdersPoller, build_quote_params, is_order_unfillable

__all__ = [
    "ActivityDerivedState",
    "ActivityDescriptor",
    "ActivityStatus",
    "ActivityType",
    "ApprovalManager",
    "ApprovalState",
    "CancelReplaceWatcher",
    "ExpiredOrdersSweeper",
    "OrderStatusPoller",
    "OrderSubmissionPipeline",
    "ReceiptPoller",
    "SwapIntent",
    "UnfillableOrdersPoller",
    "build_quote_params",
    "build_summary",
    "build_unsigned_order",
    "calculate_gas_margin",
    "compute_approval_state",
    "get_activity_derived_state",
    "get_activity_descriptor",
    "get_activity_link_url",
    "is_order_unfillable",
    "should_check",
]
