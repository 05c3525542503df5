"""Fake shipping provider — deterministic adapter for testing and development.

Generates mock provider order ids, AWB codes and pickup tokens. AWB and
pickup calls are remembered per provider order so repeated calls return the
same values, like the real provider does.
"""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

from orderflow.carrier.port import CarrierPort


class FakeCarrier(CarrierPort):
    """Fake shipping provider that always succeeds by default."""

    name = "fake"

    def __init__(self):
        self.should_succeed = True
        self.failure_reason = "Shipping provider unavailable"
        self.calls: list[dict] = []
        self._awbs: dict[str, dict] = {}
        self._pickups: dict[str, dict] = {}

    def configure(self, should_succeed: bool = True, failure_reason: str = "Shipping provider unavailable"):
        """Configure the fake provider behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def create_adhoc_order(
        self,
        order_id: str,
        items: list[dict],
        address: dict,
        payment_method: str,
        sub_total: float,
        dimensions: dict,
    ) -> dict:
        self.calls.append(
            {
                "method": "create_adhoc_order",
                "order_id": order_id,
                "items": items,
                "payment_method": payment_method,
                "sub_total": sub_total,
                "dimensions": dimensions,
            }
        )
        if not self.should_succeed:
            return {"provider_order_id": None, "shipment_id": None, "error": self.failure_reason}

        return {
            "provider_order_id": f"SR-{uuid4().hex[:10].upper()}",
            "shipment_id": f"SHP-{uuid4().hex[:10].upper()}",
        }

    def assign_awb(self, provider_order_id: str, shipment_id: str) -> dict:
        self.calls.append({"method": "assign_awb", "provider_order_id": provider_order_id, "shipment_id": shipment_id})
        if not self.should_succeed:
            return {"tracking_number": None, "courier_name": None, "error": self.failure_reason}

        if provider_order_id not in self._awbs:
            self._awbs[provider_order_id] = {
                "tracking_number": f"AWB{uuid4().int % 10**12:012d}",
                "courier_name": "Fake Express",
            }
        return dict(self._awbs[provider_order_id])

    def generate_pickup(self, provider_order_id: str, shipment_id: str) -> dict:
        self.calls.append(
            {"method": "generate_pickup", "provider_order_id": provider_order_id, "shipment_id": shipment_id}
        )
        if not self.should_succeed:
            return {"pickup_id": None, "scheduled_date": None, "error": self.failure_reason}

        if provider_order_id not in self._pickups:
            self._pickups[provider_order_id] = {
                "pickup_id": f"PKP-{uuid4().hex[:8].upper()}",
                "scheduled_date": (datetime.now(UTC) + timedelta(days=1)).date().isoformat(),
            }
        return dict(self._pickups[provider_order_id])
