"""
HTTP Spy CLI

Command-line interface running a standalone spy from a YAML plan document.

Commands:
    serve       - Serve a plan until interrupted, then verify received traffic
    validate    - Check a plan document and list its expectations

Examples:
    # Serve a stub plan on a fixed port
    httpspy serve plan.yaml --port 8080 --path /api

    # Serve for 30 seconds and save the verification report
    httpspy serve plan.yaml --duration 30 --report report.json

    # Check a plan document
    httpspy validate plan.yaml
"""

import argparse
import json
import logging
import sys
import time

from . import __version__
from .common import ConfigurationError, HttpSpyError
from .spy import HttpSpy, PlanDocument, SpyConfig


def _load_config(args) -> SpyConfig:
    config = SpyConfig.from_yaml(args.config) if args.config else SpyConfig()

    # Command-line options override the config file
    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.path is not None:
        config.path = args.path
    if args.threads is not None:
        config.service_threads = args.threads
    if args.log_level is not None:
        config.log_level = args.log_level
    return config


def cmd_serve(args):
    """
    Serve a plan document and verify the traffic it received.

    Args:
        args: Parsed command-line arguments
    """
    try:
        document = PlanDocument.from_yaml(args.plan)
        plan = document.build()
        config = _load_config(args)
        spy = HttpSpy(config=config)
        spy.test_plan(plan)
    except (OSError, ValueError, HttpSpyError) as e:
        print(f"❌ Failed to set up HTTP spy: {e}")
        sys.exit(1)

    print(f"🕵️  HTTP Spy")
    print(f"   Plan: {args.plan} ({document.plan}, {len(plan)} expectation(s))")
    print(f"   Service threads: {spy.service_threads}")

    try:
        spy.start()
    except (OSError, HttpSpyError) as e:
        print(f"❌ Failed to start HTTP spy: {e}")
        sys.exit(1)

    print(f"   Listening on: {spy.url}")
    print()

    try:
        if args.duration:
            time.sleep(args.duration)
        else:
            while True:
                time.sleep(1)
    except KeyboardInterrupt:
        print("\n")
    finally:
        spy.stop()

    report = spy.check()

    if args.report:
        with open(args.report, 'w') as f:
            json.dump(report.to_dict(), f, indent=2)
        print(f"💾 Saved verification report to {args.report}")

    if report.failed:
        print(f"❌ {report.render()}")
        sys.exit(1)

    print(f"✅ {report.render()}")


def cmd_validate(args):
    """
    Check a plan document and list its expectations.

    Args:
        args: Parsed command-line arguments
    """
    try:
        document = PlanDocument.from_yaml(args.plan)
        plan = document.build()
    except (OSError, ConfigurationError) as e:
        print(f"❌ Invalid plan document: {e}")
        sys.exit(1)

    print(f"✅ {args.plan}: {document.plan} plan with {len(plan)} expectation(s)")
    for index, entry in enumerate(plan.entries):
        print(f"   #{index} {entry.expectation.describe()} -> {entry.response.status_code}")


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog='httpspy',
        description='HTTP Spy - HTTP test double verifying received requests',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  httpspy serve plan.yaml --port 8080
  httpspy serve plan.yaml --threads 4 --report report.json
  httpspy validate plan.yaml
        """
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # --- SERVE command ---
    serve_parser = subparsers.add_parser('serve', help='Serve a plan and verify received traffic')
    serve_parser.add_argument('plan', help='YAML plan document')
    serve_parser.add_argument('--config', help='YAML spy config file')
    serve_parser.add_argument('--host', help='Host to bind (default: 127.0.0.1)')
    serve_parser.add_argument('-p', '--port', type=int, help='Port to bind (default: 0, a free port)')
    serve_parser.add_argument('--path', help='Path prefix to serve under (default: /)')
    serve_parser.add_argument('-t', '--threads', type=int, help='Service threads (default: 1)')
    serve_parser.add_argument('--log-level', choices=['debug', 'info', 'warning', 'error'],
                              help='Log level (default: info)')
    serve_parser.add_argument('--duration', type=float, help='Stop after this many seconds instead of waiting for Ctrl-C')
    serve_parser.add_argument('-r', '--report', help='Save verification report to JSON file')

    # --- VALIDATE command ---
    validate_parser = subparsers.add_parser('validate', help='Check a plan document')
    validate_parser.add_argument('plan', help='YAML plan document')

    # Parse arguments
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, (getattr(args, 'log_level', None) or 'info').upper()),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    # Dispatch to command handler
    if args.command == 'serve':
        cmd_serve(args)
    elif args.command == 'validate':
        cmd_validate(args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == '__main__':
    main()
