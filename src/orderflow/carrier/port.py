"""Shipping provider port — abstract interface for the three-step shipment flow.

Adapters return plain dicts. A failed call carries an ``error`` key with the
provider's message and no identifiers.
"""

from abc import ABC, abstractmethod


class CarrierPort(ABC):
    """Abstract interface for shipping provider adapters."""

    name: str

    @abstractmethod
    def create_adhoc_order(
        self,
        order_id: str,
        items: list[dict],
        address: dict,
        payment_method: str,
        sub_total: float,
        dimensions: dict,
    ) -> dict:
        """Create the provider-side order for a package.

        Returns:
            dict with keys: provider_order_id, shipment_id
        """
        ...

    @abstractmethod
    def assign_awb(self, provider_order_id: str, shipment_id: str) -> dict:
        """Assign a courier and airway bill to the shipment.

        Calling it again for the same provider order returns the same AWB.

        Returns:
            dict with keys: tracking_number, courier_name
        """
        ...

    @abstractmethod
    def generate_pickup(self, provider_order_id: str, shipment_id: str) -> dict:
        """Schedule the courier pickup.

        Calling it again for the same provider order returns the same pickup.

        Returns:
            dict with keys: pickup_id, scheduled_date
        """
        ...
