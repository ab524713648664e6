"""Ordering bounded context: order placement and payment settlement.

Handles the order lifecycle, the payment record settled against each order,
and the checkout workflow that reserves stock, confirms payments and
compensates on failure.
"""

import structlog
from protean.domain import Domain

ordering = Domain(name="ordering")

logger = structlog.get_logger(__name__)
