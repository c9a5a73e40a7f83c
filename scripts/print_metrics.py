from __future__ import annotations

import argparse
import json
import time

from fleetmetrics.core.logger import setup_logging
from fleetmetrics.core.metrics import SystemMetricsConfig, SystemMetricsService


def main() -> None:
    ap = argparse.ArgumentParser(description="Sample local system metrics and print them as JSON.")
    ap.add_argument("--seconds", type=float, default=0.0, help="keep sampling this long before printing")
    ap.add_argument("--history", action="store_true", help="print the whole window instead of the latest sample")
    ap.add_argument("--hours", type=float, default=24.0)
    ap.add_argument("--stats", action="store_true", help="include collector self-stats")
    args = ap.parse_args()

    logger = setup_logging()
    cfg = SystemMetricsConfig.from_env()
    with SystemMetricsService(cfg=cfg, logger=logger) as svc:
        if args.seconds > 0:
            time.sleep(args.seconds)
        if args.history:
            payload = {"samples": [s.public_dict() for s in svc.get_history(args.hours)]}
        else:
            latest = svc.get_latest()
            payload = {"latest": latest.public_dict() if latest is not None else None}
        if args.stats:
            payload["stats"] = svc.get_stats()
    print(json.dumps(payload, indent=2, sort_keys=True))


if __name__ == "__main__":
    main()
