"""Entry point for the uptime monitor."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Any

import httpx
import uvicorn
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from src.config import settings
from src.monitor.engine import MonitorEngine
from src.monitor.probes import run_probe
from src.targets.registry import Protocol, Target, TargetRegistry

console = Console()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)

_LATENCY_STYLE = {"fast": "green", "ok": "yellow", "slow": "dark_orange", "none": "green"}


def render_table(rows: list[dict[str, Any]]) -> Table:
    """Status table in the same shape the API returns."""
    online = sum(1 for r in rows if r["enabled"] and r["is_online"])
    table = Table(title=f"Monitoring {len(rows)} systems — {online} online", expand=True)
    for col in ("Status", "Name", "Host", "Protocol", "Response Time", "Uptime %", "Last Error"):
        table.add_column(col)

    for r in rows:
        if not r["enabled"]:
            dot = "[dim]○[/dim]"
        elif r["is_online"]:
            dot = f"[{_LATENCY_STYLE[r['latency_class']]}]●[/]"
        else:
            dot = "[red]●[/red]"
        protocol = r["protocol"].upper() + ("*" if r["signal"] == "send-only" else "")
        rt = f"{r['response_time_ms']}ms" if r["response_time_ms"] is not None else "-"
        table.add_row(
            dot, r["name"], r["address"], protocol, rt,
            f"{r['uptime_percentage']:.1f}%", r["last_error"] or "",
        )
    table.caption = "* UDP success only confirms the datagram was sent"
    return table


def run_server() -> None:
    """Start the FastAPI server."""
    console.print(Panel("Starting Uptime Monitor API Server", style="bold green"))
    uvicorn.run(
        "src.api.server:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )


def run_watch(server: str | None, refresh: float) -> None:
    """Live terminal view, from an in-process engine or a running server."""
    engine: MonitorEngine | None = None
    client: httpx.Client | None = None

    if server:
        client = httpx.Client(base_url=server.rstrip("/"), timeout=5.0)

        def fetch() -> list[dict[str, Any]]:
            resp = client.get("/api/targets")
            resp.raise_for_status()
            return resp.json()["targets"]
    else:
        registry = TargetRegistry(Path(settings.targets_file))
        targets = registry.load_or_create()
        engine = MonitorEngine.from_targets(
            targets,
            interval=registry.check_interval_seconds or settings.check_interval_seconds,
            timeout=registry.timeout_seconds or settings.timeout_seconds,
            grace=settings.shutdown_grace_seconds,
        )

        def fetch() -> list[dict[str, Any]]:
            return [r.to_dict() for r in engine.list()]

    try:
        with Live(render_table([]), console=console, refresh_per_second=4) as live:
            while True:
                try:
                    live.update(render_table(fetch()))
                except httpx.HTTPError as e:
                    live.update(Panel(f"Server unreachable: {e}", style="bold red"))
                time.sleep(refresh)
    except KeyboardInterrupt:
        pass
    finally:
        if engine is not None:
            engine.shutdown()
        if client is not None:
            client.close()


def run_check(host: str, port: int | None, protocol: str, timeout: float) -> int:
    """One-shot probe; exit status 0 when the target answered."""
    target = Target.from_dict({"name": host, "host": host, "port": port, "protocol": protocol})
    with console.status(f"[bold green]Checking {target.address} ({target.protocol.label})..."):
        result = run_probe(target, timeout)

    if result.ok:
        console.print(f"[green]●[/green] {target.address} reachable in {result.elapsed_ms}ms")
        if not target.protocol.confirms_reachability:
            console.print("[dim]UDP: datagram sent, no reply expected[/dim]")
        return 0
    console.print(f"[red]●[/red] {target.address} unreachable ({result.kind.value}): {result.error}")
    return 1


def main() -> None:
    parser = argparse.ArgumentParser(description="Uptime Monitor")
    sub = parser.add_subparsers(dest="command")

    # Server mode
    sub.add_parser("serve", help="Start the API server")

    # Terminal dashboard
    watch_parser = sub.add_parser("watch", help="Live status table in the terminal")
    watch_parser.add_argument("--server", help="Poll a running API instead of monitoring in-process")
    watch_parser.add_argument("--refresh", type=float, default=1.0, help="Seconds between redraws")

    # One-shot probe
    check_parser = sub.add_parser("check", help="Probe a host once")
    check_parser.add_argument("host")
    check_parser.add_argument("--port", type=int, default=None)
    check_parser.add_argument("--protocol", choices=[p.value for p in Protocol], default=Protocol.PING.value)
    check_parser.add_argument("--timeout", type=float, default=settings.timeout_seconds)

    args = parser.parse_args()

    if args.command == "serve":
        run_server()
    elif args.command == "watch":
        run_watch(args.server, args.refresh)
    elif args.command == "check":
        sys.exit(run_check(args.host, args.port, args.protocol, args.timeout))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
