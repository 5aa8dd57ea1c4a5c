import logging
import os
from typing import Any, Dict, List

from fastapi import FastAPI
from pydantic import BaseModel
import uvicorn
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from src.analytics.adapter import AnalyticsAdapter
from src.analytics.config import config
from src.analytics.host import HostBridge
from src.analytics.timers import AsyncioScheduler
from src.analytics.transport import HttpTransport

logging.basicConfig(level=logging.INFO)


class TrackedEvent(BaseModel):
    eventType: str
    args: Any = None


class HighestBidsReport(BaseModel):
    bids: List[Dict[str, Any]] = []


def options_from_env() -> Dict[str, Any]:
    """Adapter options from ANALYTICS_* environment variables."""
    options: Dict[str, Any] = {}
    if "ANALYTICS_SAMPLING" in os.environ:
        options["sampling"] = os.environ["ANALYTICS_SAMPLING"]
    if "ANALYTICS_SEND_WIN_EVENTS" in os.environ:
        options["sendWinEvents"] = os.environ["ANALYTICS_SEND_WIN_EVENTS"]
    if "ANALYTICS_SEND_DELAY" in os.environ:
        options["sendDelay"] = os.environ["ANALYTICS_SEND_DELAY"]
    if "ANALYTICS_ENDPOINT" in os.environ:
        options["endpoint"] = os.environ["ANALYTICS_ENDPOINT"]
    return options


# The host pushes its current highest bids; auctionEnd reads the latest report
highest_bids: List[Dict[str, Any]] = []

# Initialize App & Adapter
app = FastAPI(title="Auction Analytics Collector", version="1.0.0")
transport = HttpTransport(timeout_s=config.http_timeout_s)
adapter = AnalyticsAdapter(
    transport=transport,
    scheduler=AsyncioScheduler(),
    host=HostBridge(highest_cpm_bids=lambda: list(highest_bids)),
)


@app.on_event("startup")
async def startup_event():
    logging.info("Starting up Auction Analytics Collector...")
    adapter.enable_analytics(options_from_env())


@app.on_event("shutdown")
async def shutdown_event():
    logging.info("Shutting down...")
    adapter.disable_analytics()
    await transport.aclose()


@app.get("/metrics")
async def metrics():
    """Expose Prometheus metrics."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health")
async def health_check():
    """Health check endpoint for k8s/LB."""
    return {
        "status": "healthy",
        "service": "auction-analytics",
        "enabled": adapter.enabled,
        "liveAuctions": len(adapter.cache),
    }


@app.post("/events", status_code=202)
async def track_event(event: TrackedEvent):
    """
    Ingest one lifecycle event. Runs on the event loop so handlers and
    scheduled sends never interleave.
    """
    accepted = adapter.track(event.eventType, event.args)
    return {"status": "accepted" if accepted else "ignored"}


@app.post("/host/highest-cpm-bids", status_code=202)
async def report_highest_bids(report: HighestBidsReport):
    highest_bids[:] = report.bids
    return {"status": "accepted", "count": len(report.bids)}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
