"""``perch routes`` — list mounted routes.

Prints one row per endpoint: METHOD, PATH, STYLE, HANDLER. With
``--json`` the full description, schemas included, is printed instead.
"""

import argparse
import json
import sys

from perch.cli._resolve import resolve_app


def run_routes(args: argparse.Namespace) -> None:
    """List the endpoints of the app named by ``args.app``."""
    try:
        app = resolve_app(args.app)
    except (ModuleNotFoundError, AttributeError, TypeError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    described = app.describe_routes()

    if getattr(args, "json", False):
        print(json.dumps(described, indent=2))
        return

    if not described:
        print("No routes registered.")
        return

    rows = [(d["method"], d["path"], d["style"], d["handler"]) for d in described]
    headers = ("METHOD", "PATH", "STYLE", "HANDLER")
    widths = [max(len(row[i]) for row in (headers, *rows)) for i in range(3)]

    fmt = f"{{:<{widths[0]}}}  {{:<{widths[1]}}}  {{:<{widths[2]}}}  {{}}"
    print(fmt.format(*headers))
    print("-" * min(sum(widths) + 6 + max(len(r[3]) for r in rows), 80))
    for row in rows:
        print(fmt.format(*row))
