"""Converge CLI — run a single-instance convergence pass from the command line.

Usage examples::

    converge --target aws -c '{"region_name":"us-east-1"}' find --desired '{"name":"node-1"}'
    converge --target aws apply --desired '{"name":"node-1","image_id":"ami-abc","instance_type":"m5.large"}'
    converge --target terraform link --name node-1
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the ``converge`` CLI.

    Returns:
        Configured :class:`~argparse.ArgumentParser`.
    """
    parser = argparse.ArgumentParser(
        prog="converge",
        description="Converge a single EC2 instance",
    )
    parser.add_argument(
        "--target", "-t",
        required=True,
        choices=["aws", "terraform"],
        help="Execution target",
    )
    parser.add_argument(
        "--config", "-c",
        type=str,
        default="{}",
        help='JSON config string (e.g. \'{"region_name":"us-east-1"}\')',
    )
    sub = parser.add_subparsers(dest="command", required=True)

    find = sub.add_parser("find", help="Discover the live instance for a desired descriptor")
    find.add_argument("--desired", "-d", required=True, help="Desired instance as JSON (user_data as base64)")

    apply = sub.add_parser("apply", help="Run one convergence pass")
    apply.add_argument("--desired", "-d", required=True, help="Desired instance as JSON (user_data as base64)")

    link = sub.add_parser("link", help="Print the Terraform reference for an instance name")
    link.add_argument("--name", "-n", required=True, help="Stable instance name")
    return parser


def _load_json(flag: str, raw: str) -> dict[str, Any]:
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        print(f"Invalid {flag} JSON: {e}", file=sys.stderr)
        sys.exit(1)
    if not isinstance(value, dict):
        print(f"Invalid {flag} JSON: expected an object", file=sys.stderr)
        sys.exit(1)
    return value


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    Parses arguments, builds the target via :func:`converge.target_factory`
    and runs the requested command. Descriptors are printed as JSON;
    degraded results are reported on stderr.

    Args:
        argv: Optional argument list (defaults to ``sys.argv``).
    """
    parser = _build_parser()
    ns = parser.parse_args(argv)
    config = _load_json("--config", ns.config)

    # Lazy-import to avoid loading boto3 for argument errors
    from pydantic import ValidationError

    from converge import Context, Instance, InstanceTask, target_factory
    from converge.base.exceptions import ConvergeError

    if ns.command == "link":
        task = InstanceTask(Instance(name=ns.name))
        print(task.terraform_link())
        return

    try:
        target = target_factory(ns.target, config)
        desired = Instance.model_validate_json(ns.desired)
    except (ValueError, ValidationError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    task = InstanceTask(desired)
    context = Context(target)
    try:
        if ns.command == "find":
            actual = task.find(context)
        else:
            task.run(context)
    except ConvergeError as e:
        print(f"Operation failed: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        for warning in context.warnings:
            print(f"warning: {warning.operation}: {warning.message}", file=sys.stderr)

    if ns.command == "find":
        print("absent" if actual is None else actual.model_dump_json(indent=2, exclude_none=True))
    elif ns.target == "terraform":
        print(target.to_json())
    else:
        print(desired.id)


if __name__ == "__main__":
    main()
