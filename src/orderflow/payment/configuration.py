"""Payment configuration admin — command, handler and service entry points."""

import json

from protean import handle
from protean.fields import Boolean, Float, String, Text
from protean.utils.globals import current_domain

from orderflow.domain import orderflow
from orderflow.payment.config import (
    PaymentConfig,
    PaymentConfigSnapshot,
    current_payment_config,
    load_payment_config,
    reload_payment_config,
)


@orderflow.command(part_of="PaymentConfig")
class UpdatePaymentConfig:
    online_payment_enabled = Boolean()
    cod_enabled = Boolean()
    default_provider = String(max_length=20)
    min_amount = Float()
    max_amount = Float()
    providers = Text()  # JSON: list of provider setting dicts


@orderflow.command_handler(part_of=PaymentConfig)
class PaymentConfigHandler:
    @handle(UpdatePaymentConfig)
    def update_payment_config(self, command):
        config = load_payment_config()
        providers = json.loads(command.providers) if command.providers else None
        config.update(
            online_payment_enabled=command.online_payment_enabled,
            cod_enabled=command.cod_enabled,
            default_provider=command.default_provider,
            min_amount=command.min_amount,
            max_amount=command.max_amount,
            providers=providers,
        )
        current_domain.repository_for(PaymentConfig).add(config)


def update_payment_config(**changes) -> PaymentConfigSnapshot:
    """Save configuration changes and make them the active snapshot."""
    providers = changes.pop("providers", None)
    command = UpdatePaymentConfig(
        providers=json.dumps(providers) if providers is not None else None,
        **changes,
    )
    current_domain.process(command, asynchronous=False)
    return reload_payment_config()


def get_payment_config() -> PaymentConfigSnapshot:
    return current_payment_config()
