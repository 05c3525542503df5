"""Payment configuration — admin-managed settings for checkout.

The configuration is a singleton aggregate stored under a fixed id. The
payment services never read the repository directly: they validate against
an immutable ``PaymentConfigSnapshot``. Callers may pass one in; otherwise
the cached snapshot is used, which is loaded once and replaced by
``reload_payment_config()`` whenever an admin saves a change.

The cache is per process. Another worker sees a saved change after it
reloads, or when callers pass it ``load_payment_config().snapshot()``.
"""

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, String, Text
from protean.utils.globals import current_domain

from orderflow.domain import orderflow

PAYMENT_CONFIG_ID = "payment-config"

_DEFAULT_PROVIDERS = (
    {"name": "razorpay", "is_enabled": True, "currency": "INR", "settings": {}},
    {"name": "cashfree", "is_enabled": False, "currency": "INR", "settings": {}},
)


class PaymentProvider(Enum):
    RAZORPAY = "razorpay"
    CASHFREE = "cashfree"
    COD = "cod"


ONLINE_PROVIDERS = (PaymentProvider.RAZORPAY.value, PaymentProvider.CASHFREE.value)


@orderflow.entity(part_of="PaymentConfig")
class ProviderSetting:
    """Settings for one payment provider."""

    name = String(required=True, max_length=20, choices=PaymentProvider)
    is_enabled = Boolean(default=False)
    currency = String(max_length=3, default="INR")
    settings = Text()  # JSON dict of non-secret provider options


@orderflow.aggregate
class PaymentConfig:
    online_payment_enabled = Boolean(default=False)
    cod_enabled = Boolean(default=True)
    default_provider = String(max_length=20, default="razorpay")
    min_amount = Float(default=1.0, min_value=0.0)
    max_amount = Float(default=100000.0, min_value=0.0)
    providers = HasMany(ProviderSetting)
    updated_at = DateTime()

    @invariant.post
    def amount_limits_are_ordered(self):
        if self.min_amount is not None and self.max_amount is not None and self.min_amount > self.max_amount:
            raise ValidationError({"min_amount": ["Minimum amount cannot exceed the maximum amount"]})

    @invariant.post
    def provider_names_are_unique(self):
        names = [p.name for p in self.providers or []]
        if len(names) != len(set(names)):
            raise ValidationError({"providers": ["Each payment provider can be configured only once"]})

    @classmethod
    def default(cls):
        config = cls(id=PAYMENT_CONFIG_ID, updated_at=datetime.now(UTC))
        for data in _DEFAULT_PROVIDERS:
            config.add_providers(
                ProviderSetting(
                    name=data["name"],
                    is_enabled=data["is_enabled"],
                    currency=data["currency"],
                    settings=json.dumps(data["settings"]),
                )
            )
        return config

    def update(
        self,
        online_payment_enabled: bool | None = None,
        cod_enabled: bool | None = None,
        default_provider: str | None = None,
        min_amount: float | None = None,
        max_amount: float | None = None,
        providers: list[dict] | None = None,
    ) -> None:
        """Apply the given changes; omitted values are left as they are."""
        if online_payment_enabled is not None:
            self.online_payment_enabled = online_payment_enabled
        if cod_enabled is not None:
            self.cod_enabled = cod_enabled
        if default_provider is not None:
            if default_provider not in ONLINE_PROVIDERS:
                raise ValidationError({"default_provider": [f"Unknown payment provider '{default_provider}'"]})
            self.default_provider = default_provider
        if min_amount is not None or max_amount is not None:
            with atomic_change(self):
                if min_amount is not None:
                    self.min_amount = min_amount
                if max_amount is not None:
                    self.max_amount = max_amount
        for data in providers or []:
            self._upsert_provider(data)
        self.updated_at = datetime.now(UTC)

    def _upsert_provider(self, data: dict) -> None:
        name = data.get("name")
        if name not in ONLINE_PROVIDERS:
            raise ValidationError({"providers": [f"Unknown payment provider '{name}'"]})
        existing = next((p for p in self.providers or [] if p.name == name), None)
        settings = data.get("settings")
        if existing is None:
            self.add_providers(
                ProviderSetting(
                    name=name,
                    is_enabled=bool(data.get("is_enabled", False)),
                    currency=data.get("currency") or "INR",
                    settings=json.dumps(settings or {}),
                )
            )
            return
        if "is_enabled" in data:
            existing.is_enabled = bool(data["is_enabled"])
        if data.get("currency"):
            existing.currency = data["currency"]
        if settings is not None:
            existing.settings = json.dumps(settings)

    def snapshot(self) -> "PaymentConfigSnapshot":
        return PaymentConfigSnapshot(
            online_payment_enabled=bool(self.online_payment_enabled),
            cod_enabled=bool(self.cod_enabled),
            default_provider=self.default_provider,
            min_amount=self.min_amount,
            max_amount=self.max_amount,
            providers=tuple(
                ProviderSnapshot(
                    name=p.name,
                    is_enabled=bool(p.is_enabled),
                    currency=p.currency or "INR",
                    settings=json.loads(p.settings) if p.settings else {},
                )
                for p in self.providers or []
            ),
        )


# ---------------------------------------------------------------------------
# Immutable snapshot used by the payment services
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class ProviderSnapshot:
    name: str
    is_enabled: bool
    currency: str = "INR"
    settings: dict = field(default_factory=dict)


@dataclass(frozen=True)
class PaymentConfigSnapshot:
    online_payment_enabled: bool
    cod_enabled: bool
    default_provider: str
    min_amount: float
    max_amount: float
    providers: tuple[ProviderSnapshot, ...] = ()

    def provider(self, name: str) -> ProviderSnapshot | None:
        return next((p for p in self.providers if p.name == name), None)

    @classmethod
    def from_dict(cls, data: dict) -> "PaymentConfigSnapshot":
        return cls(
            online_payment_enabled=bool(data["online_payment_enabled"]),
            cod_enabled=bool(data["cod_enabled"]),
            default_provider=data["default_provider"],
            min_amount=data["min_amount"],
            max_amount=data["max_amount"],
            providers=tuple(
                ProviderSnapshot(
                    name=p["name"],
                    is_enabled=bool(p["is_enabled"]),
                    currency=p.get("currency") or "INR",
                    settings=dict(p.get("settings") or {}),
                )
                for p in data.get("providers", [])
            ),
        )

    def resolve_provider(self, name: str | None) -> str:
        return name or self.default_provider

    def validate_payment_method(self, payment_method: str) -> None:
        """Check that new orders may use ``payment_method``."""
        if payment_method == "COD" and not self.cod_enabled:
            raise ValidationError({"payment_method": ["Cash on delivery is currently disabled"]})
        if payment_method == "ONLINE" and not self.online_payment_enabled:
            raise ValidationError({"payment_method": ["Online payments are currently disabled"]})

    def validate_intent(self, amount: float, provider: str) -> ProviderSnapshot:
        """Check a payment intent against the configuration.

        Returns the provider settings to use for the intent.
        """
        if provider == "cod":
            raise ValidationError({"provider": ["Cash-on-delivery orders do not create payment transactions"]})
        if not self.online_payment_enabled:
            raise ValidationError({"provider": ["Online payments are currently disabled"]})
        setting = self.provider(provider)
        if setting is None or not setting.is_enabled:
            raise ValidationError({"provider": [f"Payment provider '{provider}' is not enabled"]})
        if amount is None or amount < self.min_amount or amount > self.max_amount:
            raise ValidationError(
                {"amount": [f"Amount {amount} is outside the allowed range {self.min_amount} to {self.max_amount}"]}
            )
        return setting

    def to_dict(self) -> dict:
        return {
            "online_payment_enabled": self.online_payment_enabled,
            "cod_enabled": self.cod_enabled,
            "default_provider": self.default_provider,
            "min_amount": self.min_amount,
            "max_amount": self.max_amount,
            "providers": [
                {
                    "name": p.name,
                    "is_enabled": p.is_enabled,
                    "currency": p.currency,
                    "settings": dict(p.settings),
                }
                for p in self.providers
            ],
        }


# ---------------------------------------------------------------------------
# Snapshot cache
# ---------------------------------------------------------------------------
_current_snapshot: PaymentConfigSnapshot | None = None


def load_payment_config() -> PaymentConfig:
    """Return the stored configuration, or an unsaved default one."""
    try:
        return current_domain.repository_for(PaymentConfig).get(PAYMENT_CONFIG_ID)
    except ObjectNotFoundError:
        return PaymentConfig.default()


def current_payment_config() -> PaymentConfigSnapshot:
    """Return the active configuration snapshot, loading it on first use."""
    global _current_snapshot
    if _current_snapshot is None:
        _current_snapshot = load_payment_config().snapshot()
    return _current_snapshot


def reload_payment_config() -> PaymentConfigSnapshot:
    """Replace the active snapshot with the stored configuration."""
    global _current_snapshot
    _current_snapshot = load_payment_config().snapshot()
    return _current_snapshot


def snapshot_payload(config: PaymentConfigSnapshot | None) -> str:
    """Serialize the snapshot a service call runs against, for its command."""
    return json.dumps((config or current_payment_config()).to_dict())


def snapshot_from_payload(payload: str | None) -> PaymentConfigSnapshot:
    return PaymentConfigSnapshot.from_dict(json.loads(payload)) if payload else current_payment_config()


def reset_payment_config() -> None:
    """Drop the cached snapshot (useful for testing)."""
    global _current_snapshot
    _current_snapshot = None
