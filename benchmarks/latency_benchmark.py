import argparse
import sys
import time
from collections import defaultdict

import numpy as np
import psutil

from src.analytics.adapter import AnalyticsAdapter
from src.analytics.timers import ManualScheduler
from src.analytics.transport import MemoryTransport
from src.simulation.replay import generate_mock_stream

# Per-event ingestion budget (ms) on the host's auction thread
MAX_MEAN_LATENCY_MS = 0.5


def rss_mb() -> float:
    return psutil.Process().memory_info().rss / 1024 / 1024


def run(n_auctions: int, seed: int):
    scheduler = ManualScheduler()
    transport = MemoryTransport()
    adapter = AnalyticsAdapter(transport=transport, scheduler=scheduler)
    adapter.enable_analytics({"sampling": 100})

    events = list(generate_mock_stream(n_auctions, seed=seed))
    by_kind = defaultdict(list)
    peak_live = 0

    mem_before = rss_mb()
    for event in events:
        if event["offsetMs"] > scheduler.now():
            scheduler.run_until(event["offsetMs"])
        t0 = time.perf_counter_ns()
        adapter.track(event["eventType"], event["args"])
        by_kind[event["eventType"]].append((time.perf_counter_ns() - t0) / 1e6)
        peak_live = max(peak_live, len(adapter.cache))
    scheduler.run_all()
    mem_after = rss_mb()

    return by_kind, transport, adapter, peak_live, mem_after - mem_before


def report(by_kind, transport, adapter, peak_live, mem_growth) -> float:
    all_latencies = np.concatenate([np.array(v) for v in by_kind.values()])

    print(f"{'event':<14}{'count':>8}{'mean':>10}{'p50':>10}{'p99':>10}")
    for kind, latencies in sorted(by_kind.items()):
        arr = np.array(latencies)
        print(f"{kind:<14}{arr.size:>8}{arr.mean():>10.4f}{np.percentile(arr, 50):>10.4f}"
              f"{np.percentile(arr, 99):>10.4f}")
    print(f"{'all':<14}{all_latencies.size:>8}{all_latencies.mean():>10.4f}"
          f"{np.percentile(all_latencies, 50):>10.4f}{np.percentile(all_latencies, 99):>10.4f}")

    print(f"\npayloads captured: {len(transport.requests)}")
    print(f"peak live auctions: {peak_live} (left after drain: {len(adapter.cache)})")
    print(f"rss growth: {mem_growth:.2f} MB")
    return float(all_latencies.mean())


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Ingestion latency of the analytics adapter")
    parser.add_argument("--auctions", type=int, default=2000)
    parser.add_argument("--seed", type=int, default=7)
    args = parser.parse_args(argv)

    mean_ms = report(*run(args.auctions, args.seed))
    if mean_ms > MAX_MEAN_LATENCY_MS:
        print(f"FAILED: mean event latency {mean_ms:.4f} ms > {MAX_MEAN_LATENCY_MS} ms")
        return 1
    print("PASSED")
    return 0


if __name__ == "__main__":
    sys.exit(main())
