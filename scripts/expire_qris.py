#!/usr/bin/env python3
"""
expire_qris.py: cancel orders whose QRIS payment window has closed (run from cron)
"""
import argparse, logging, sys
from pathlib import Path

def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--log-level", default="INFO")
    args = ap.parse_args()
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    repo_root = Path(__file__).resolve().parents[1]
    sys.path.insert(0, str(repo_root / "services" / "storefront"))
    from app.api.deps import get_publisher
    from app.core.config import settings
    from app.db.session import SessionLocal
    from app.kafka import producer
    from app.services.notifier import Notifier
    from app.services.reconciler import PaymentReconciler

    notifier = Notifier(SessionLocal, publisher=get_publisher(settings), topic=settings.TOPIC_ORDER_EVENTS)
    try:
        with SessionLocal() as db:
            results = PaymentReconciler(db, settings, notifier).expire_overdue()
    finally:
        producer.close()
    print(f"Expired {len(results)} QRIS payment(s): {[r.order_id for r in results]}")

if __name__ == "__main__":
    main()
