"""Shipping provider adapter abstraction — pluggable shipping provider integration."""

import os

_carrier_instance = None


def get_carrier():
    """Return the configured shipping provider adapter (singleton).

    Uses FakeCarrier by default. Set CARRIER_ADAPTER=shiprocket to talk to
    Shiprocket with the SHIPROCKET_EMAIL / SHIPROCKET_PASSWORD credentials.
    """
    global _carrier_instance
    if _carrier_instance is None:
        adapter = os.environ.get("CARRIER_ADAPTER", "fake")
        if adapter == "fake":
            from orderflow.carrier.fake_adapter import FakeCarrier

            _carrier_instance = FakeCarrier()
        elif adapter == "shiprocket":
            from orderflow.carrier.shiprocket_adapter import ShiprocketCarrier

            _carrier_instance = ShiprocketCarrier.from_env()
        else:
            raise ValueError(f"Unknown carrier adapter: {adapter}")
    return _carrier_instance


def set_carrier(carrier) -> None:
    """Override the active shipping provider adapter (useful for tests)."""
    global _carrier_instance
    _carrier_instance = carrier


def reset_carrier():
    """Reset the carrier singleton (useful for testing)."""
    global _carrier_instance
    _carrier_instance = None
