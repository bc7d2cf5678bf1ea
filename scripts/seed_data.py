#!/usr/bin/env python3
"""
Seed the database with a small set of cut orders.

Creates order "1001" (two bundles at C1), splits 40 sheets off the first
bundle, assigns the sibling to a work order and moves the second bundle to
C2.  Useful for poking at view_orders.py.

Usage:
    python3 scripts/seed_data.py [--config settings.yaml] [--reset]
"""

import argparse
import sys
from datetime import date
from pathlib import Path

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed demo cut orders.")
    parser.add_argument("--config", help="YAML settings overriding the defaults")
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Drop and recreate all tables first",
    )
    args = parser.parse_args()

    from bundle_config import get_active_settings
    from bundle_config.bridges import build_orchestrator
    from bundle_kernel.db.engine import create_kernel_engine, create_tables, drop_tables
    from bundle_kernel.domain.dtos import BundleIdentifiers, NewBundleSpec
    from bundle_kernel.exceptions import BundleKernelError

    settings = get_active_settings(args.config)
    if args.reset:
        engine = create_kernel_engine(settings.database_url, **settings.engine_options())
        drop_tables(engine)
        create_tables(engine)
        engine.dispose()

    orchestrator = build_orchestrator(settings)
    try:
        order = orchestrator.create_cut_order(
            "1001",
            date.today(),
            [NewBundleSpec(sheets=100, coil_number="B-17"), NewBundleSpec(sheets=50)],
            default_location_code="C1",
        )
        first, second = order.bundles
        split = orchestrator.split_bundle(
            first.id,
            order.id,
            40,
            BundleIdentifiers("00012345600000000011", "LUID-1A"),
            BundleIdentifiers("00012345600000000028", "LUID-1B"),
        )
        orchestrator.apply_bundle_action([split.new_bundle_id], "assign", order_number="WO-55")
        orchestrator.apply_bundle_action([second.id], "move", destination_code="C2")
    except BundleKernelError as exc:
        print(f"seed failed: [{exc.code}] {exc}", file=sys.stderr)
        return 1

    print(f"seeded order {order.code} ({order.id})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
