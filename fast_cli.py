#!/usr/bin/env python3
"""
fast-meter -- estimate connection speed against fast.com from the terminal.

Usage::

    fast-meter                        # latency + download, rich output
    fast-meter --upload               # also measure upload
    fast-meter --json                 # flat JSON record to stdout
    fast-meter -6                     # force IPv6 for every connection
    fast-meter --duration 40          # raise the stability ceiling
    fast-meter --url https://host/x   # skip fast.com discovery
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Any, Dict, List, Optional

from display.dashboard import (
    ProgressDisplay,
    console,
    print_failure,
    print_final_results,
    print_header,
    print_latency_details,
    print_speed_result,
)
from display.output import format_json, result_from_phases
from meter.api import FastAPI
from meter.bandwidth import SpeedTestResult, StabilityCriteria
from meter.config import load_config
from meter.constants import (
    MAX_CONNECTIONS,
    MAX_DURATION,
    MAX_PING_COUNT,
    MIN_CONNECTIONS,
    MIN_PING_COUNT,
)
from meter.context import RunContext
from meter.download import DownloadTester
from meter.errors import (
    MeterError,
    ProtocolError,
    SpeedTestFailed,
    UrlDiscoveryFailed,
)
from meter.latency import LatencyTester
from meter.logging_setup import configure_logging
from meter.protocol import ProtocolPreference
from meter.stats import NetworkStats
from meter.upload import UploadTester

logger = logging.getLogger("fast_cli")


# ---------------------------------------------------------------------------
# Parameter validation
# ---------------------------------------------------------------------------

def _validate(
    ipv: int,
    duration: float,
    url_count: int,
    connections: int,
    ping_count: int,
) -> None:
    """Raise ``ValueError`` if any parameter is out of range."""
    if ipv not in (0, 4, 6):
        raise ValueError("IP version must be 0 (auto), 4 or 6")
    if not 0 < duration <= MAX_DURATION:
        raise ValueError(f"Duration must be between 0 and {MAX_DURATION:.0f} s")
    if url_count < 1:
        raise ValueError("URL count must be at least 1")
    if not MIN_CONNECTIONS <= connections <= MAX_CONNECTIONS:
        raise ValueError(f"Connections must be between {MIN_CONNECTIONS} and {MAX_CONNECTIONS}")
    if not MIN_PING_COUNT <= ping_count <= MAX_PING_COUNT:
        raise ValueError(f"Ping count must be between {MIN_PING_COUNT} and {MAX_PING_COUNT}")


def _merge_config(args: argparse.Namespace, config: Dict[str, Any]) -> argparse.Namespace:
    """Fill every flag the user did not pass from *config*."""
    for key in ("ipv", "upload", "duration", "https", "url_count", "connections", "ping_count"):
        if getattr(args, key) is None:
            setattr(args, key, config[key])
    return args


# ---------------------------------------------------------------------------
# Core test runner
# ---------------------------------------------------------------------------

async def _discover_urls(
    context: RunContext, use_https: bool, url_count: int
) -> List[str]:
    async with FastAPI(use_https=use_https, context=context) as api:
        urls = await api.get_urls(url_count)
    logger.info("Got %d URLs", len(urls))
    return urls


async def _run_phase(
    tester: Any,
    urls: List[str],
    description: str,
    show_ui: bool,
) -> SpeedTestResult:
    if not show_ui:
        return await tester.measure(urls)

    progress = ProgressDisplay(tester.criteria.max_duration_seconds)
    progress.start(description)
    try:
        return await tester.measure(urls, on_progress=progress.update)
    finally:
        progress.stop()


def _protocol_failure(
    context: RunContext, exc: ProtocolError, show_ui: bool, **phases: Any
) -> Dict[str, Any]:
    logger.error("Protocol check failed: %s", exc)
    message = f"{context.protocol.label} connectivity check failed"
    if show_ui:
        print_failure(f"{message}: {exc}")
    return result_from_phases(error=message, **phases)


async def run_fast(
    *,
    ipv: int = 0,
    upload: bool = False,
    json_output: bool = False,
    duration: float = 30.0,
    use_https: bool = True,
    urls: Optional[List[str]] = None,
    url_count: int = 5,
    connections: int = 4,
    ping_count: int = 10,
) -> Dict[str, Any]:
    """Execute the full measurement sequence and return the flat result record.

    A fatal failure is reported in the record's ``error`` field; phases that
    completed before it are still filled in.
    """
    show_ui = not json_output

    if show_ui:
        print_header()

    logger.info(
        "Config: https=%s, ipv=%d, upload=%s, json=%s, duration=%.0fs",
        use_https, ipv, upload, json_output, duration,
    )

    context = RunContext(protocol=ProtocolPreference.from_flag(ipv))

    # -- Protocol ---------------------------------------------------------
    try:
        await context.establish()
    except ProtocolError as exc:
        return _protocol_failure(context, exc, show_ui)

    # -- URLs -------------------------------------------------------------
    if not urls:
        if show_ui:
            console.print("[dim]Fetching test URLs from fast.com...[/dim]")
        try:
            urls = await _discover_urls(context, use_https, url_count)
        except (UrlDiscoveryFailed, ProtocolError) as exc:
            logger.error("Failed to get URLs: %s", exc)
            if show_ui:
                print_failure(f"Failed to get URLs: {exc}")
            return result_from_phases(error="Failed to get URLs")

    for url in urls:
        logger.debug("URL: %s", url)

    # -- Latency ----------------------------------------------------------
    if show_ui:
        console.print(f"[dim]Measuring latency ({ping_count} tests)...[/dim]")

    latency: Optional[NetworkStats] = None
    try:
        latency = await LatencyTester(
            ping_count=ping_count, context=context
        ).measure_latency_stats(urls)
    except ProtocolError as exc:
        return _protocol_failure(context, exc, show_ui)
    except MeterError as exc:
        logger.error("Latency test failed: %s", exc)

    if show_ui and latency is not None:
        print_latency_details(latency)

    criteria = StabilityCriteria.with_max_duration(duration)

    # -- Download ---------------------------------------------------------
    try:
        download = await _run_phase(
            DownloadTester(criteria=criteria, connections=connections, context=context),
            urls, "Measuring download speed...", show_ui,
        )
    except ProtocolError as exc:
        return _protocol_failure(context, exc, show_ui, latency=latency)
    except SpeedTestFailed as exc:
        logger.error("Download test failed: %s", exc)
        if show_ui:
            print_failure(f"Download test failed: {exc}")
        return result_from_phases(latency=latency, error="Download test failed")

    if show_ui:
        print_speed_result(download, "Download Results", "green")

    # -- Upload -----------------------------------------------------------
    upload_result: Optional[SpeedTestResult] = None
    if upload:
        try:
            upload_result = await _run_phase(
                UploadTester(criteria=criteria, connections=connections, context=context),
                urls, "Measuring upload speed...", show_ui,
            )
        except ProtocolError as exc:
            return _protocol_failure(context, exc, show_ui, latency=latency, download=download)
        except SpeedTestFailed as exc:
            logger.error("Upload test failed: %s", exc)
            if show_ui:
                print_failure(f"Upload test failed: {exc}")
            return result_from_phases(
                latency=latency, download=download, error="Upload test failed"
            )

        if show_ui:
            print_speed_result(upload_result, "Upload Results", "blue")

    # -- Summary ----------------------------------------------------------
    if show_ui:
        print_final_results(latency, download, upload_result)

    return result_from_phases(latency=latency, download=download, upload=upload_result)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fast-meter",
        description="Estimate connection speed using fast.com servers",
    )
    # Protocol
    parser.add_argument("--ipv", type=int, choices=(0, 4, 6), default=None, help="IP version: 0 auto, 4 or 6 (default: 0)")
    parser.add_argument("-4", dest="ipv", action="store_const", const=4, help="Force IPv4")
    parser.add_argument("-6", dest="ipv", action="store_const", const=6, help="Force IPv6")

    # Test selection
    parser.add_argument("--upload", "-u", action="store_true", default=None, help="Also measure upload speed")
    parser.add_argument("--duration", "-d", type=float, default=None, metavar="SECS", help="Maximum test duration in seconds, at least 25 (default: 30)")
    parser.add_argument("--https", action=argparse.BooleanOptionalAction, default=None, help="Use https when talking to fast.com (default: on)")

    # Targets and load
    parser.add_argument("--url", action="append", dest="urls", metavar="URL", help="Test against URL instead of fast.com discovery (repeatable)")
    parser.add_argument("--url-count", type=int, default=None, metavar="N", help="Number of fast.com URLs to request (default: 5)")
    parser.add_argument("--connections", type=int, default=None, metavar="N", help="Number of concurrent connections (default: 4)")
    parser.add_argument("--ping-count", type=int, default=None, metavar="N", help="Latency probes per URL (default: 10)")

    # Output
    parser.add_argument("--json", "-j", action="store_true", help="Output results as JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging to stderr")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    args = _merge_config(args, load_config())

    try:
        _validate(
            ipv=args.ipv,
            duration=args.duration,
            url_count=args.url_count,
            connections=args.connections,
            ping_count=args.ping_count,
        )
    except ValueError as exc:
        if args.json:
            print(format_json(result_from_phases(error=str(exc))))
        else:
            console.print(f"[red]Error: {exc}[/red]")
        sys.exit(1)

    try:
        result = asyncio.run(
            run_fast(
                ipv=args.ipv,
                upload=bool(args.upload),
                json_output=args.json,
                duration=args.duration,
                use_https=bool(args.https),
                urls=args.urls,
                url_count=args.url_count,
                connections=args.connections,
                ping_count=args.ping_count,
            )
        )
    except KeyboardInterrupt:
        console.print("\n[yellow]Test cancelled by user[/yellow]")
        sys.exit(1)

    if args.json:
        print(format_json(result))

    if result["error"] is not None:
        sys.exit(1)


if __name__ == "__main__":
    main()
