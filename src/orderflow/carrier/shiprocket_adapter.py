"""Shiprocket shipping provider adapter.

Authenticates with account credentials to obtain a bearer token, then drives
the adhoc order → AWB → pickup flow over the Shiprocket external API.
"""

import os
from datetime import UTC, datetime

import httpx
import structlog

from orderflow.carrier.port import CarrierPort
from orderflow.utils.http import build_client, error_message, provider_timeout

logger = structlog.get_logger(__name__)

SHIPROCKET_BASE_URL = "https://apiv2.shiprocket.in/v1/external"
DEFAULT_PICKUP_LOCATION = "Primary"


class ShiprocketError(Exception):
    """A Shiprocket call failed or returned an unusable response."""


class ShiprocketCarrier(CarrierPort):
    """Shiprocket external API adapter."""

    name = "shiprocket"

    def __init__(
        self,
        email: str,
        password: str,
        pickup_location: str = DEFAULT_PICKUP_LOCATION,
        timeout: float | None = None,
    ):
        if not email or not password:
            raise ValueError("SHIPROCKET_EMAIL and SHIPROCKET_PASSWORD are required")
        self.email = email
        self.password = password
        self.pickup_location = pickup_location
        self.timeout = timeout if timeout is not None else provider_timeout()
        self._token: str | None = None

    @classmethod
    def from_env(cls) -> "ShiprocketCarrier":
        return cls(
            email=os.environ.get("SHIPROCKET_EMAIL", ""),
            password=os.environ.get("SHIPROCKET_PASSWORD", ""),
            pickup_location=os.environ.get("SHIPROCKET_PICKUP_LOCATION", DEFAULT_PICKUP_LOCATION),
        )

    # -------------------------------------------------------------------
    # HTTP plumbing
    # -------------------------------------------------------------------
    def _authenticate(self, client: httpx.Client) -> str:
        response = client.post("/auth/login", json={"email": self.email, "password": self.password})
        if not response.is_success:
            raise ShiprocketError(f"Authentication failed: {error_message(response)}")
        token = response.json().get("token")
        if not token:
            raise ShiprocketError("Authentication response carried no token")
        return token

    def _post(self, path: str, body: dict) -> dict:
        try:
            with build_client(SHIPROCKET_BASE_URL, timeout=self.timeout) as client:
                if self._token is None:
                    self._token = self._authenticate(client)
                response = client.post(path, json=body, headers={"Authorization": f"Bearer {self._token}"})
                if response.status_code == 401:
                    # Tokens expire after ten days; log in again once.
                    self._token = self._authenticate(client)
                    response = client.post(path, json=body, headers={"Authorization": f"Bearer {self._token}"})
        except httpx.TimeoutException as exc:
            raise ShiprocketError(f"Shiprocket did not respond within {self.timeout} seconds") from exc
        except httpx.HTTPError as exc:
            raise ShiprocketError(f"Shiprocket request failed: {exc}") from exc

        if not response.is_success:
            raise ShiprocketError(error_message(response))
        return response.json()

    def _call(self, operation: str, path: str, body: dict) -> tuple[dict | None, str | None]:
        try:
            return self._post(path, body), None
        except ShiprocketError as exc:
            logger.warning("Shiprocket call failed", operation=operation, error=str(exc))
            return None, str(exc)

    # -------------------------------------------------------------------
    # Port implementation
    # -------------------------------------------------------------------
    def create_adhoc_order(
        self,
        order_id: str,
        items: list[dict],
        address: dict,
        payment_method: str,
        sub_total: float,
        dimensions: dict,
    ) -> dict:
        name = (address.get("name") or "").strip()
        first_name, _, last_name = name.partition(" ")
        body = {
            "order_id": order_id,
            "order_date": datetime.now(UTC).strftime("%Y-%m-%d %H:%M"),
            "pickup_location": self.pickup_location,
            "billing_customer_name": first_name,
            "billing_last_name": last_name,
            "billing_address": address.get("street"),
            "billing_city": address.get("city"),
            "billing_pincode": address.get("postal_code"),
            "billing_state": address.get("state"),
            "billing_country": address.get("country") or "India",
            "billing_email": address.get("email"),
            "billing_phone": address.get("phone"),
            "shipping_is_billing": True,
            "order_items": [
                {
                    "name": item["name"],
                    "sku": item["sku"],
                    "units": item["units"],
                    "selling_price": item["selling_price"],
                }
                for item in items
            ],
            "payment_method": "COD" if payment_method == "COD" else "Prepaid",
            "sub_total": sub_total,
            "length": dimensions["length"],
            "breadth": dimensions["breadth"],
            "height": dimensions["height"],
            "weight": dimensions["weight"],
        }
        data, error = self._call("create_adhoc_order", "/orders/create/adhoc", body)
        if error:
            return {"provider_order_id": None, "shipment_id": None, "error": error}
        if not data.get("order_id") or not data.get("shipment_id"):
            return {"provider_order_id": None, "shipment_id": None, "error": data.get("message", "No order created")}
        return {"provider_order_id": str(data["order_id"]), "shipment_id": str(data["shipment_id"])}

    def assign_awb(self, provider_order_id: str, shipment_id: str) -> dict:
        data, error = self._call("assign_awb", "/courier/assign/awb", {"shipment_id": shipment_id})
        if error:
            return {"tracking_number": None, "courier_name": None, "error": error}

        awb = (data.get("response") or {}).get("data") or {}
        if not awb.get("awb_code"):
            return {"tracking_number": None, "courier_name": None, "error": data.get("message", "No AWB assigned")}
        return {"tracking_number": awb["awb_code"], "courier_name": awb.get("courier_name")}

    def generate_pickup(self, provider_order_id: str, shipment_id: str) -> dict:
        data, error = self._call("generate_pickup", "/courier/generate/pickup", {"shipment_id": [shipment_id]})
        if error:
            return {"pickup_id": None, "scheduled_date": None, "error": error}

        pickup = data.get("response") or {}
        if not data.get("pickup_status"):
            return {"pickup_id": None, "scheduled_date": None, "error": pickup.get("data", "Pickup not generated")}
        return {
            "pickup_id": str(pickup.get("pickup_token_number") or ""),
            "scheduled_date": pickup.get("pickup_scheduled_date"),
        }
