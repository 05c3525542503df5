"""Order fulfillment bounded context — item lifecycle, shipping and payments.

Owns the per-item status ledger of an order, the three-step shipping
provider saga and the reconciliation of online payments with the
payment providers.
"""

import structlog
from protean.domain import Domain

orderflow = Domain(name="orderflow")

logger = structlog.get_logger(__name__)
