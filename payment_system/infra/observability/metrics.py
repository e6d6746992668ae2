from prometheus_client import Counter, Gauge


# Define Prometheus metrics
checkout_sessions_total = Counter("checkout_sessions_total", "Checkout sessions requested", ["status"])

payment_volume_total = Counter("payment_volume_total", "Total payment volume processed", ["currency", "status"])

payout_volume_total = Counter("payout_volume_total", "Total payout volume transferred to sellers", ["currency", "status"])

transfer_legs_total = Counter("transfer_legs_total", "Seller transfer attempts", ["source", "status"])

webhook_events_total = Counter("webhook_events_total", "Completion webhook outcomes", ["outcome"])

settlements_awaiting_transfers = Gauge(
    "settlements_awaiting_transfers", "Paid settlements that still owe at least one seller"
)
