from prometheus_client import Counter, Gauge

# --- Pipeline Metrics ---
EVENTS_TRACKED = Counter('analytics_events_total', 'Lifecycle events tracked', ['event'])
HANDLER_ERRORS = Counter('analytics_handler_errors_total', 'Events dropped by a failing handler', ['event'])
PAYLOADS = Counter('analytics_payloads_total', 'Payload delivery attempts', ['kind', 'outcome'])
LIVE_AUCTIONS = Gauge('analytics_live_auctions', 'Auction records currently cached')
