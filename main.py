# main.py
"""CLI entry point for the Chronicle manuscript system."""

from __future__ import annotations

import argparse
import sys

from orchestration.cli_runner import run, serve


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chronicle")
    sub = parser.add_subparsers(dest="command", required=True)

    generate = sub.add_parser("generate", help="Plan, write and review a manuscript")
    generate.add_argument("project_file", help="Path to the project YAML definition")

    translate = sub.add_parser("translate", help="Translate a finished manuscript")
    translate.add_argument("project_id")
    translate.add_argument("--to", required=True, help="Target language code, e.g. es")
    translate.add_argument("--source", default=None, help="Source language code")

    resume = sub.add_parser("resume", help="Resume a frozen or interrupted job")
    resume.add_argument("job_id")

    status = sub.add_parser("status", help="Show a job's status")
    status.add_argument("job_id")

    server = sub.add_parser("serve", help="Run the HTTP API")
    server.add_argument("--host", default="127.0.0.1")
    server.add_argument("--port", type=int, default=8000)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse command-line arguments and start Chronicle."""
    args = build_parser().parse_args(argv)
    if args.command == "serve":
        serve(args.host, args.port)
        return 0
    return run(args)


if __name__ == "__main__":
    sys.exit(main())
