"""
BarrioWatch CLI entrypoint.

This CLI is intended for operators and local debugging against the configured backend.
It delegates all rules to `barriowatch.verification`, `barriowatch.sos` and
`barriowatch.reports`; positions come from flags instead of a device.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any
from zoneinfo import ZoneInfo

from barriowatch.config.settings import Settings, get_settings
from barriowatch.core.geo import GeoPoint, haversine_m
from barriowatch.core.logging import configure_logging
from barriowatch.devices.fixed import ChunkedAudioCapture, FixedLocationSource, NoAudioCapture
from barriowatch.domain.errors import BarrioWatchError
from barriowatch.domain.models import Report, ReportCategory, UserIdentity
from barriowatch.reports.feed import ReportFeed
from barriowatch.reports.leaderboard import Leaderboard
from barriowatch.sos.beacon import SosBeacon
from barriowatch.stores.supabase import SupabaseBackend
from barriowatch.verification.workflow import VerificationWorkflow


def _backend(args: argparse.Namespace, settings: Settings) -> SupabaseBackend:
    return SupabaseBackend(settings, access_token=args.token)


def _location(args: argparse.Namespace) -> FixedLocationSource:
    if args.lat is None or args.lon is None:
        return FixedLocationSource(None)
    return FixedLocationSource(GeoPoint(lat=float(args.lat), lon=float(args.lon)))


async def _require_user(backend: SupabaseBackend) -> UserIdentity:
    user = await backend.auth().current_user()
    if user is None:
        raise BarrioWatchError("Not signed in: pass --token or set BARRIOWATCH_ACCESS_TOKEN")
    return user


def _print_reports(reports: list[Report], *, as_json: bool, timezone: str) -> None:
    if as_json:
        print(json.dumps([r.model_dump(mode="json") for r in reports], ensure_ascii=False, indent=2))
        return
    tz = ZoneInfo(timezone)
    for r in reports:
        status = "verified" if r.verified else "pending"
        folio = f"  folio={r.police_folio}" if r.police_folio else ""
        print(
            f"{r.id}  {r.created_at.astimezone(tz):%Y-%m-%d %H:%M}  {r.category.value:<10} "
            f"({r.location.lat:.4f}, {r.location.lon:.4f})  {status}{folio}"
        )
        print(f"    {r.description}")


def _positive_int(value: str) -> int:
    n = int(value)
    if n < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return n


def _cmd_distance(args: argparse.Namespace) -> int:
    a = GeoPoint(lat=args.from_point[0], lon=args.from_point[1])
    b = GeoPoint(lat=args.to_point[0], lon=args.to_point[1])
    print(f"{haversine_m(a, b):.1f}")
    return 0


async def _run_feed(args: argparse.Namespace) -> int:
    settings = get_settings()
    backend = _backend(args, settings)
    try:
        category = ReportCategory(args.category) if args.category else None
        page = await ReportFeed(backend.reports, settings).latest(category=category, limit=args.limit)
    finally:
        await backend.aclose()
    _print_reports(page.reports, as_json=args.json, timezone=settings.app.timezone)
    if not args.json:
        print(f"{len(page.reports)} of {page.total} verified report(s)")
    return 0


async def _run_show(args: argparse.Namespace) -> int:
    settings = get_settings()
    backend = _backend(args, settings)
    try:
        report = await ReportFeed(backend.reports, settings).detail(args.report_id)
    finally:
        await backend.aclose()
    _print_reports([report], as_json=args.json, timezone=settings.app.timezone)
    return 0


async def _run_verifiable(args: argparse.Namespace) -> int:
    settings = get_settings()
    backend = _backend(args, settings)
    try:
        user = await _require_user(backend)
        reports = await VerificationWorkflow(backend.reports, settings).list_verifiable_reports(
            user, _location(args)
        )
    finally:
        await backend.aclose()
    _print_reports(reports, as_json=args.json, timezone=settings.app.timezone)
    return 0


async def _run_verify(args: argparse.Namespace) -> int:
    settings = get_settings()
    backend = _backend(args, settings)
    try:
        user = await _require_user(backend)
        report = await VerificationWorkflow(backend.reports, settings).verify_report(
            user, args.report_id, _location(args)
        )
    finally:
        await backend.aclose()
    print(f"Report {report.id} verified")
    return 0


async def _run_leaderboard(args: argparse.Namespace) -> int:
    settings = get_settings()
    backend = _backend(args, settings)
    try:
        standings = await Leaderboard(backend.neighborhoods, settings).standings(args.limit)
    finally:
        await backend.aclose()
    for s in standings:
        n = s.neighborhood
        prize = f"  prize: {n.current_prize}" if n.current_prize else ""
        print(f"{s.rank:>2}. {n.name:<24} {s.verification_rate:>3}%  ({n.verified_count}/{n.reports_total}){prize}")
    return 0


async def _run_sos(args: argparse.Namespace) -> int:
    settings = get_settings()
    if args.interval is not None:
        sos = settings.sos.model_copy(update={"emission_interval_seconds": float(args.interval)})
        settings = settings.model_copy(update={"sos": sos})

    backend = _backend(args, settings)
    audio: Any = NoAudioCapture()
    if args.audio_file:
        try:
            audio = ChunkedAudioCapture.from_file(args.audio_file, chunk_size=args.audio_chunk_bytes)
        except BarrioWatchError as e:
            print(f"warning: {e}; continuing without audio", file=sys.stderr)

    beacon = SosBeacon(
        auth=backend.auth(),
        location=_location(args),
        audio=audio,
        blobs=backend.blobs,
        events=backend.events,
        settings=settings,
    )
    try:
        session = await beacon.start()
        try:
            await asyncio.sleep(float(args.duration))
        finally:
            await session.stop()
    finally:
        await backend.aclose()
    print(f"SOS session ended: {session.events_emitted} event(s) sent")
    return 0


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("barriowatch.api.app:app", host=args.host, port=int(args.port), log_config=None)
    return 0


def _async_command(runner):
    def _cmd(args: argparse.Namespace) -> int:
        return asyncio.run(runner(args))

    return _cmd


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the BarrioWatch CLI."""
    parser = argparse.ArgumentParser(prog="barriowatch", description=f"{get_settings().app.name} operator CLI")
    parser.add_argument("--token", default=None, help="User access token (default: BARRIOWATCH_ACCESS_TOKEN)")
    sub = parser.add_subparsers(dest="command", required=True)

    dist = sub.add_parser("distance", help="Great-circle distance in meters between two points.")
    dist.add_argument("--from", dest="from_point", nargs=2, type=float, required=True, metavar=("LAT", "LON"))
    dist.add_argument("--to", dest="to_point", nargs=2, type=float, required=True, metavar=("LAT", "LON"))
    dist.set_defaults(func=_cmd_distance)

    feed = sub.add_parser("feed", help="Latest verified reports.")
    feed.add_argument("--category", choices=[c.value for c in ReportCategory], default=None)
    feed.add_argument("--limit", type=_positive_int, default=None)
    feed.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    feed.set_defaults(func=_async_command(_run_feed))

    show = sub.add_parser("show", help="One report by id.")
    show.add_argument("report_id")
    show.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    show.set_defaults(func=_async_command(_run_show))

    ver = sub.add_parser("verifiable", help="Pending reports you may verify from a position.")
    ver.add_argument("--lat", type=float, default=None)
    ver.add_argument("--lon", type=float, default=None)
    ver.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    ver.set_defaults(func=_async_command(_run_verifiable))

    vfy = sub.add_parser("verify", help="Verify one pending report from a position.")
    vfy.add_argument("report_id")
    vfy.add_argument("--lat", type=float, default=None)
    vfy.add_argument("--lon", type=float, default=None)
    vfy.set_defaults(func=_async_command(_run_verify))

    lb = sub.add_parser("leaderboard", help="Neighborhood standings by verification rate.")
    lb.add_argument("--limit", type=_positive_int, default=None, help="Show the top N (default: 10).")
    lb.set_defaults(func=_async_command(_run_leaderboard))

    sos = sub.add_parser("sos", help="Run an SOS beacon from a fixed position for a bounded time.")
    sos.add_argument("--lat", type=float, required=True)
    sos.add_argument("--lon", type=float, required=True)
    sos.add_argument("--duration", type=float, default=60.0, help="Seconds before the beacon is stopped.")
    sos.add_argument("--interval", type=float, default=None, help="Override the emission interval (seconds).")
    sos.add_argument("--audio-file", default=None, help="Replay this file as captured audio.")
    sos.add_argument("--audio-chunk-bytes", type=int, default=4096)
    sos.set_defaults(func=_async_command(_run_sos))

    srv = sub.add_parser("serve", help="Run the HTTP API with uvicorn.")
    srv.add_argument("--host", default="127.0.0.1")
    srv.add_argument("--port", type=int, default=8000)
    srv.set_defaults(func=_cmd_serve)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint callable used by `python -m barriowatch.cli`."""
    configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)
    func: Any = getattr(args, "func")
    try:
        return int(func(args))
    except BarrioWatchError as e:
        print(f"error [{e.code}]: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
