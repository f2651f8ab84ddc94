import argparse
import json
import os
import sys

from ci_common.models import parse_build_ref

from .client import get_recipients, prune_builds, record_build

OUTCOMES = ["SUCCESS", "UNSTABLE", "FAILURE", "ABORTED", "NOT_BUILT"]


def get_server_url() -> str:
    """
    Get the notification server URL from environment variable or use default.

    Environment variables:
    - CI_NOTIFY_SERVER_URL: Custom server URL (useful for testing with different ports)
    """
    return os.environ.get("CI_NOTIFY_SERVER_URL", "http://localhost:8000")


def print_report(report: dict) -> None:
    anchor = f"#{report['anchor']}" if report.get("anchor") is not None else "(none)"
    print(f"Build:  {report['job']}#{report['number']} ({report['outcome']})")
    print(f"Anchor: {anchor}")
    if not report["recipients"]:
        print("No recipients.")
        return
    for address in report["recipients"]:
        print(address)


def main(argv: list[str] | None = None):
    """Main entry point for the CI notification CLI."""
    parser = argparse.ArgumentParser(description="CI notification CLI")
    subparsers = parser.add_subparsers(dest="command")

    # ci-notify record --job JOB --number N --outcome OUTCOME [--change ...] [--cause ...]
    record_parser = subparsers.add_parser(
        "record", help="Report a completed build to the server"
    )
    record_parser.add_argument("--job", required=True, help="Job name")
    record_parser.add_argument("--number", required=True, type=int, help="Build number")
    record_parser.add_argument(
        "--outcome", required=True, type=str.upper, choices=OUTCOMES, help="Build result"
    )
    record_parser.add_argument(
        "--change",
        dest="changes",
        action="append",
        default=[],
        help='Change set author, e.g. "Jane Doe <jane@example.com>" (repeatable)',
    )
    record_parser.add_argument(
        "--cause",
        dest="causes",
        action="append",
        default=[],
        help="Upstream build as JOB#NUMBER (repeatable)",
    )

    # ci-notify prune JOB --keep N
    prune_parser = subparsers.add_parser(
        "prune", help="Keep only the newest builds of a job on the server"
    )
    prune_parser.add_argument("job", help="Job name")
    prune_parser.add_argument(
        "--keep", required=True, type=int, help="Number of newest builds to keep"
    )

    # ci-notify recipients JOB NUMBER [--provider NAME] [--json]
    recipients_parser = subparsers.add_parser(
        "recipients", help="Show who would be notified about a build"
    )
    recipients_parser.add_argument("job", help="Job name")
    recipients_parser.add_argument("number", type=int, help="Build number")
    recipients_parser.add_argument(
        "--provider",
        dest="providers",
        action="append",
        default=[],
        help="Recipient provider (repeatable, default: server configuration)",
    )
    recipients_parser.add_argument(
        "--json",
        dest="json_mode",
        action="store_true",
        help="Output in JSON format",
    )

    args = parser.parse_args(argv)
    server_url = get_server_url()

    if args.command == "record":
        try:
            causes = [parse_build_ref(value) for value in args.causes]
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(2)

        try:
            build = record_build(
                args.job,
                args.number,
                args.outcome,
                changes=args.changes,
                causes=[(cause.job, cause.number) for cause in causes],
                server_url=server_url,
            )
        except RuntimeError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)

        print(f"Recorded {build['job']}#{build['number']} ({build['outcome']})")
        sys.exit(0)

    elif args.command == "recipients":
        try:
            report = get_recipients(
                args.job, args.number, providers=args.providers, server_url=server_url
            )
        except RuntimeError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)

        if args.json_mode:
            print(json.dumps(report, indent=2))
        else:
            print_report(report)
        sys.exit(0)

    elif args.command == "prune":
        if args.keep < 0:
            print("Error: --keep must not be negative", file=sys.stderr)
            sys.exit(2)

        try:
            result = prune_builds(args.job, args.keep, server_url=server_url)
        except RuntimeError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)

        print(
            f"Pruned {result['deleted']} build(s) of {result['job']}, "
            f"{result['retained']} retained"
        )
        sys.exit(0)

    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
