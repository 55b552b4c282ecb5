#!/usr/bin/env python3
"""
AETHER CLI - Command-line interface for the AETHER playbook service.

Usage:
    aether-cli playbooks list [--trigger=<trigger>]
    aether-cli playbooks show <id>
    aether-cli playbooks run <id> [--confirm] [--resume-index=<n>] [--var key=value ...]
    aether-cli health

Options:
    -h --help               Show this help message
    --trigger=<trigger>     Only playbooks declared for this trigger
    --confirm               Approve confirm-gated steps
    --resume-index=<n>      Start at step n (from a previous result)
    --var key=value         Variable passed to step handlers (repeatable)
"""
import os
import sys
import json
import argparse
import requests
from typing import Optional, Dict, Any


def get_base_url() -> str:
    """Get the AETHER playbook API base URL from environment."""
    url = os.environ.get("AETHER_PLAYBOOKS_URL", "http://localhost:8892")
    return url.rstrip("/")


def api_request(
    method: str,
    endpoint: str,
    data: Optional[Dict] = None,
    params: Optional[Dict] = None
) -> Dict[str, Any]:
    """Make an API request to the playbook service."""
    url = f"{get_base_url()}{endpoint}"
    headers = {"Content-Type": "application/json"}

    try:
        if method.upper() == "GET":
            response = requests.get(url, params=params, headers=headers, timeout=30)
        elif method.upper() == "POST":
            # Runs may include long wait steps
            response = requests.post(url, json=data, headers=headers, timeout=300)
        else:
            raise ValueError(f"Unsupported HTTP method: {method}")

        return response.json()
    except requests.RequestException as e:
        return {"success": False, "message": str(e), "results": []}
    except json.JSONDecodeError:
        return {"success": False, "message": "Invalid JSON response", "results": []}


def format_table(headers: list, rows: list) -> str:
    """Format data as a table."""
    if not rows:
        return "No results found."

    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(str(cell)))

    header_line = " | ".join(h.ljust(widths[i]) for i, h in enumerate(headers))
    separator = "-+-".join("-" * w for w in widths)
    row_lines = [
        " | ".join(str(cell).ljust(widths[i]) for i, cell in enumerate(row))
        for row in rows
    ]

    return f"{header_line}\n{separator}\n" + "\n".join(row_lines)


def parse_vars(pairs: Optional[list]) -> Dict[str, str]:
    """Turn ["key=value", ...] into a dict."""
    variables: Dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Invalid variable '{pair}', expected key=value")
        variables[key.strip()] = value
    return variables


def cmd_playbooks_list(args: argparse.Namespace) -> int:
    """List registered playbooks."""
    params = {"trigger": args.trigger} if args.trigger else None
    result = api_request("GET", "/api/playbooks", params=params)

    if not result.get("success", False):
        print(f"Error: {result.get('message', 'Unknown error')}")
        return 1

    headers = ["Id", "Trigger", "Risk", "Steps"]
    rows = []
    for pb in result.get("results", []):
        rows.append([
            pb.get("id", ""),
            pb.get("trigger", ""),
            pb.get("risk", ""),
            len(pb.get("steps", [])),
        ])

    print(format_table(headers, rows))
    return 0


def cmd_playbooks_show(args: argparse.Namespace) -> int:
    """Show a playbook's steps."""
    result = api_request("GET", f"/api/playbooks/{args.id}")

    if not result.get("success", False):
        print(f"Error: {result.get('message', 'Playbook not found')}")
        return 1

    pb = result.get("results", {})
    print(f"Playbook: {pb.get('id')}")
    print(f"Trigger:  {pb.get('trigger')}")
    print(f"Risk:     {pb.get('risk')}")
    print()

    headers = ["#", "Action", "Confirm", "Description"]
    rows = []
    for i, step in enumerate(pb.get("steps", [])):
        rows.append([
            i,
            step.get("action", ""),
            "Yes" if step.get("confirm") else "No",
            step.get("desc") or step.get("message") or "",
        ])

    print(format_table(headers, rows))
    return 0


def cmd_playbooks_run(args: argparse.Namespace) -> int:
    """Run a playbook and print where it stopped."""
    try:
        variables = parse_vars(args.var)
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    body: Dict[str, Any] = {"confirmed": args.confirm}
    if args.resume_index is not None:
        body["resume_index"] = args.resume_index
    if variables:
        body["variables"] = variables

    result = api_request("POST", f"/api/playbooks/{args.id}/run", data=body)
    run = result.get("results")
    if not isinstance(run, dict):
        print(f"Error: {result.get('message', 'Unknown error')}")
        return 1

    for outcome in run.get("results", []):
        observed = outcome.get("observed")
        suffix = f" ({observed})" if observed is not None else ""
        print(f"  [done] {outcome.get('step')}{suffix}")

    if run.get("needsConfirm"):
        step = run.get("step") or {}
        print(f"Confirmation required for step {run.get('resumeIndex')}: "
              f"{step.get('action')}")
        print(f"Re-run with --confirm --resume-index={run.get('resumeIndex')}")
        return 2

    if not run.get("success", False):
        print(f"Error: {run.get('error', result.get('message', 'Unknown error'))}")
        return 1

    if run.get("suggestion"):
        print(f"Suggestion: {run['suggestion']}")
        if run.get("resumeIndex") is not None:
            print(f"Continue with --confirm --resume-index={run['resumeIndex']}")
    else:
        print("Playbook completed.")

    return 0


def cmd_health(args: argparse.Namespace) -> int:
    """Check playbook service health."""
    try:
        response = requests.get(f"{get_base_url()}/health", timeout=10)
        health_data = response.json()

        print(f"Status:    {health_data.get('status', 'unknown').upper()}")
        print(f"Playbooks: {health_data.get('playbooks', 'unknown')}")

        return 0 if health_data.get("status") == "healthy" else 1
    except requests.RequestException as e:
        print(f"Error connecting to AETHER playbooks: {e}")
        return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="AETHER CLI - run and inspect remediation playbooks",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    playbooks_parser = subparsers.add_parser("playbooks", help="Playbook operations")
    playbooks_subparsers = playbooks_parser.add_subparsers(dest="subcommand")

    list_parser = playbooks_subparsers.add_parser("list", help="List playbooks")
    list_parser.add_argument("--trigger", help="Filter by trigger")

    show_parser = playbooks_subparsers.add_parser("show", help="Show a playbook")
    show_parser.add_argument("id", help="Playbook id")

    run_parser = playbooks_subparsers.add_parser("run", help="Run a playbook")
    run_parser.add_argument("id", help="Playbook id")
    run_parser.add_argument("--confirm", action="store_true", help="Approve confirm-gated steps")
    run_parser.add_argument("--resume-index", type=int, help="Step index to start from")
    run_parser.add_argument("--var", action="append", metavar="KEY=VALUE",
                            help="Variable for step handlers (repeatable)")

    subparsers.add_parser("health", help="Check playbook service health")

    return parser


def main(argv: Optional[list] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "playbooks":
        if args.subcommand == "list":
            return cmd_playbooks_list(args)
        elif args.subcommand == "show":
            return cmd_playbooks_show(args)
        elif args.subcommand == "run":
            return cmd_playbooks_run(args)
        else:
            print("Usage: aether-cli playbooks {list,show,run} ...")
            return 1
    elif args.command == "health":
        return cmd_health(args)

    return 0


if __name__ == "__main__":
    sys.exit(main())
