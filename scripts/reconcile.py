"""Repair back-reference drift in the blog database.

Run it after a crash or whenever the metrics look inconsistent; it is safe
to run repeatedly, a clean database reports zero repairs.
"""
import asyncio
import argparse
import logging
import time

from app.config import settings
from app.database import async_session
from app.services.reconcile import reconcile
from app.store import EntityStore


async def run() -> int:
    start = time.perf_counter()
    report = await reconcile(EntityStore(async_session))
    elapsed = time.perf_counter() - start

    print(f"Reconciliation finished in {elapsed:.1f}s")
    for name, count in report.model_dump().items():
        print(f"  {name}: {count}")
    return report.total


def main():
    parser = argparse.ArgumentParser(description="Re-derive every back-reference from the forward references")
    parser.add_argument("--verbose", action="store_true", help="Log every individual repair")
    args = parser.parse_args()
    logging.basicConfig(level="INFO" if args.verbose else settings.LOG_LEVEL)
    asyncio.run(run())


if __name__ == "__main__":
    main()
