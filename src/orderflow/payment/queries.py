"""Read-side helpers for payment transactions: listings and statistics."""

from orderflow.payment.loading import transactions_matching
from orderflow.payment.transaction import PaymentTransaction, TransactionStatus


def transaction_summary(txn: PaymentTransaction) -> dict:
    return {
        "transaction_id": str(txn.id),
        "order_id": str(txn.order_id),
        "provider": txn.provider,
        "provider_order_id": txn.provider_order_id,
        "provider_payment_id": txn.provider_payment_id,
        "amount": txn.amount,
        "currency": txn.currency,
        "status": txn.status,
        "failure_reason": txn.failure_reason,
        "duplicate_capture": bool(txn.duplicate_capture),
        "refund_id": txn.refund_id,
        "refunded_amount": txn.refunded_amount,
        "refunded_items": [
            {"item_id": str(a.item_id), "quantity": a.quantity, "amount": a.amount} for a in txn.refunded_items or []
        ],
        "created_at": txn.created_at.isoformat() if txn.created_at else None,
    }


def list_transactions(
    order_id: str | None = None,
    status: str | None = None,
    provider: str | None = None,
) -> list[dict]:
    """List transactions, newest first, optionally filtered."""
    filters = {}
    if order_id:
        filters["order_id"] = order_id
    if status:
        filters["status"] = status
    if provider:
        filters["provider"] = provider
    transactions = sorted(
        transactions_matching(**filters),
        key=lambda t: t.created_at.timestamp() if t.created_at else 0,
        reverse=True,
    )
    return [transaction_summary(t) for t in transactions]


def payment_stats() -> dict:
    """Transaction counts and amounts by status and by provider."""
    by_status = {s.value: {"count": 0, "amount": 0.0} for s in TransactionStatus}
    by_provider: dict[str, dict] = {}
    captured = 0.0
    refunded = 0.0

    for txn in transactions_matching():
        by_status[txn.status]["count"] += 1
        by_status[txn.status]["amount"] = round(by_status[txn.status]["amount"] + txn.amount, 2)

        provider = by_provider.setdefault(txn.provider, {"count": 0, "amount": 0.0})
        provider["count"] += 1
        provider["amount"] = round(provider["amount"] + txn.amount, 2)

        if txn.status in (TransactionStatus.SUCCESS.value, TransactionStatus.REFUNDED.value):
            captured += txn.amount
        refunded += txn.refunded_amount or 0.0

    total = sum(s["count"] for s in by_status.values())
    settled = total - by_status[TransactionStatus.PENDING.value]["count"]
    succeeded = by_status[TransactionStatus.SUCCESS.value]["count"] + by_status[TransactionStatus.REFUNDED.value]["count"]
    return {
        "total_transactions": total,
        "by_status": by_status,
        "by_provider": by_provider,
        "captured_amount": round(captured, 2),
        "refunded_amount": round(refunded, 2),
        "net_amount": round(captured - refunded, 2),
        "success_rate": round(succeeded / settled * 100, 2) if settled else 0.0,
    }
