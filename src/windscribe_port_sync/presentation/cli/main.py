import logging
from pathlib import Path

import typer

from windscribe_port_sync.application.use_cases.run_loop import RunLoop
from windscribe_port_sync.config import settings
from windscribe_port_sync.domain.errors import CaptchaUnsolvable
from windscribe_port_sync.domain.model import CaptchaChallenge
from windscribe_port_sync.infrastructure.adapters.captcha.slider_solver import solve_captcha
from windscribe_port_sync.presentation.container import build_services

app = typer.Typer(help="Keep qBittorrent's listening port on the Windscribe ephemeral port")


@app.callback()
def main(log_level: str = typer.Option(settings.log_level, "--log-level", "-l")) -> None:
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def run() -> None:
    """Sync now, then keep re-syncing on lease renewal and retry timers."""
    services = build_services(settings)
    try:
        RunLoop(services.use_case, cron=settings.cron_schedule).run_forever()
    except KeyboardInterrupt:
        typer.echo("Interrupted")


@app.command()
def sync() -> None:
    """Run a single reconciliation pass."""
    result = build_services(settings).use_case.execute()
    port = result.port.port if result.port else "unknown"
    typer.echo(f"{result.status}: port={port} ({result.message})")
    if result.status == "ERROR":
        raise typer.Exit(code=1)


@app.command()
def status() -> None:
    """Show the cached forwarded port and when its lease needs renewal."""
    cached = build_services(settings).reconciler.get_port()
    if cached is None:
        typer.echo("No cached port")
        raise typer.Exit(code=1)
    typer.echo(f"Port {cached.port} (expires {cached.expires_at.isoformat()})")


@app.command("solve-captcha")
def solve_captcha_cmd(
    background: Path = typer.Argument(..., exists=True, dir_okay=False),
    top: int = typer.Option(..., "--top", "-t"),
    slider: Path | None = typer.Option(None, "--slider", "-s", exists=True, dir_okay=False),
    debug_dir: Path | None = typer.Option(None, "--debug-dir"),
) -> None:
    """Solve a saved slider captcha offline and print the drag offset."""
    challenge = CaptchaChallenge(
        background=background.read_bytes(),
        slider=slider.read_bytes() if slider else None,
        top=top,
    )
    try:
        solution = solve_captcha(challenge, debug_dir=debug_dir)
    except CaptchaUnsolvable as e:
        typer.echo(f"Unsolvable: {e}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"offset={solution.offset} trail_points={len(solution.trail)}")


if __name__ == "__main__":
    app()
