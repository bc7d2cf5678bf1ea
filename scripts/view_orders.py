#!/usr/bin/env python3
"""
Print cut orders, their bundles and (optionally) each bundle's history.

Usage:
    python3 scripts/view_orders.py [--config settings.yaml] [--history]
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def main() -> int:
    parser = argparse.ArgumentParser(description="List cut orders and bundles.")
    parser.add_argument("--config", help="YAML settings overriding the defaults")
    parser.add_argument("--history", action="store_true", help="Show bundle history")
    args = parser.parse_args()

    from bundle_config import get_active_settings
    from bundle_config.bridges import build_orchestrator
    from bundle_kernel.domain.history import render_audit_line

    orchestrator = build_orchestrator(get_active_settings(args.config))
    orders = orchestrator.list_cut_orders()
    if not orders:
        print("no cut orders")
        return 0

    for order in orders:
        state = "active" if order.active else "closed"
        print(
            f"Order {order.code}  {order.order_date.isoformat()}  {state}  "
            f"registered={order.registered_bundles}/{order.declared_bundle_count}  "
            f"pending={order.pending_bundles}"
        )
        for bundle in order.bundles:
            location = bundle.location.code if bundle.location else "-"
            print(
                f"  {bundle.display_name:<22} {bundle.sheets:>6} sheets  "
                f"{bundle.status.value:<9} {location:<4} wo={bundle.work_order or '-'}"
            )
            if args.history:
                for entry in bundle.history:
                    print(f"      {render_audit_line(entry)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
