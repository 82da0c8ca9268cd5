#!/usr/bin/env python3
# Point map client – headless session against the points backend
#
# Commands:
# - points   query the current view and export what would be on the map (GeoJSON)
#            --raw writes the backend's feature shape of the shown points instead
# - add      drop a point (needs a verified session)
# - vote     rate someone else's point up/down (needs a verified session)
# - delete   remove one of your own points
# - verify   ask the backend to email a verification link
# - status   show whether the session is verified
#
# Files:
# - config.json   base_url, user_agent, start view, viewport_px, export_path, log_dir
#                 verification_cookie (value of the backend's cookie after verifying)
#
# View:
# --view takes the map's share string ("lat=44.93&lng=-93.26&zm=13") or a full URL.

import argparse
import sys
from pathlib import Path

import pm
from pm.adapters.map_widget import GeoJsonMap
from pm.core.config import load_config
from pm.core.constants import ICON_PALETTE
from pm.core.models import VoteDirection
from pm.core.session import MapSession
from pm.domain.location import start_view_from_query
from pm.utils.dispatch import ImmediateExecutor
from pm.utils.files import save_json
from pm.utils.log import log_line, setup_logging
from pm.utils.rate import rate_snapshot


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Point map client")
    ap.add_argument("--config", default="config.json", help="path to config.json")
    ap.add_argument("--view", default="", help="start view: lat=..&lng=..&zm=.. or a map URL")
    ap.add_argument("--version", action="version", version=f"%(prog)s {pm.__version__}")
    sub = ap.add_subparsers(dest="cmd", required=True)

    p = sub.add_parser("points", help="fetch visible points and export them")
    p.add_argument("--out", default=None, help="GeoJSON output (default: export_path)")
    p.add_argument("--raw", action="store_true", help="export the backend's feature shape instead of what the map shows")

    p = sub.add_parser("add", help="add a point")
    p.add_argument("--lat", type=float, required=True)
    p.add_argument("--lng", type=float, required=True)
    p.add_argument("--message", required=True)
    p.add_argument("--icon", default=None, help=f"one of {' '.join(ICON_PALETTE)} or any single character")

    p = sub.add_parser("vote", help="rate a point")
    p.add_argument("point_id")
    p.add_argument("direction", choices=["up", "down"])

    p = sub.add_parser("delete", help="remove your own point")
    p.add_argument("point_id")

    p = sub.add_parser("verify", help="send a verification email")
    p.add_argument("email")

    sub.add_parser("status", help="show verification state")
    return ap


def open_session(cfg: dict, view: str) -> MapSession:
    center, zoom, _ = start_view_from_query(view, cfg)
    widget = GeoJsonMap(center, zoom, cfg["viewport_px"])
    # One-shot commands: run calls inline so results are applied before we exit.
    session = MapSession(cfg, widget, executor=ImmediateExecutor())
    session.start()
    return session


def cmd_points(session: MapSession, cfg: dict, out: str | None, raw: bool = False) -> int:
    path = Path(out or cfg["export_path"])
    if raw:
        feats = [pt.to_feature() for pt in session.points.values()]
        save_json(path, {"type": "FeatureCollection", "features": feats})
    else:
        save_json(path, session.widget.to_geojson())
    log_line(f"EXPORT | {len(session.markers)} points -> {path}")
    return 0


def cmd_add(session: MapSession, args: argparse.Namespace) -> int:
    flow = session.flow
    flow.place(args.lat, args.lng)
    if args.icon:
        try:
            if args.icon in ICON_PALETTE:
                flow.select_icon(args.icon)
            else:
                flow.type_icon(args.icon)
        except ValueError as e:
            flow.cancel()
            log_line(str(e), "ERROR")
            return 2
    fut = flow.submit(args.message)
    if fut is None:
        log_line("Verify your email before adding points (client.py verify EMAIL)", "WARN")
        return 2
    return 0 if fut.result().ok else 1


def log_calls() -> None:
    calls = rate_snapshot()
    parts = [f"{ep}={ok} ok/{fail} fail" for ep, (ok, fail) in sorted(calls.items())]
    log_line("CALLS | " + (" | ".join(parts) if parts else "none"))


def run_command(session: MapSession, cfg: dict, args: argparse.Namespace) -> int:
    if args.cmd == "points":
        return cmd_points(session, cfg, args.out, args.raw)
    if args.cmd == "add":
        return cmd_add(session, args)
    if args.cmd == "vote":
        direction = VoteDirection.UPVOTE if args.direction == "up" else VoteDirection.DOWNVOTE
        fut = session.vote(args.point_id, direction)
        if fut is None:
            return 2
        return 0 if fut.result().ok else 1
    if args.cmd == "delete":
        fut = session.delete(args.point_id)
        if fut is None:
            return 2
        return 0 if fut.result().ok else 1
    if args.cmd == "verify":
        return 0 if session.request_verification(args.email).result().ok else 1
    if args.cmd == "status":
        print("verified" if session.verified else "not verified")
        return 0
    return 2


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        cfg = load_config(args.config)
    except ValueError as e:
        print(f"config error: {e}", file=sys.stderr)
        return 2
    setup_logging(Path(cfg["log_dir"]))
    log_line(f"CLIENT v{pm.__version__} | {args.cmd} | backend={cfg['base_url']}")

    session = open_session(cfg, args.view)
    try:
        return run_command(session, cfg, args)
    finally:
        log_calls()
        session.close()


if __name__ == "__main__":
    sys.exit(main())
