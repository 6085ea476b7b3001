"""Watch a channel's timer in the terminal."""

import argparse
import asyncio
import os

from dotenv import load_dotenv
from rich.color import Color, ColorParseError
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.text import Text

from obs_timer.client.overlay import OverlayClient
from obs_timer.client.predictor import TimerPredictor
from obs_timer.core.config import Settings
from obs_timer.core.logging import setup_logging

load_dotenv()

DEFAULT_URL = os.getenv("OBS_TIMER_URL", "ws://localhost:3000/ws")


def _text_color(value: str) -> str:
    try:
        Color.parse(value)
    except ColorParseError:
        return "white"
    return value


def render(predictor: TimerPredictor, channel: str) -> Panel:
    state = predictor.snapshot
    if state is None:
        return Panel(Text("waiting for state...", style="dim"), title=channel)

    body = "" if predictor.hidden else predictor.formatted()
    status = "running" if state.is_running else "stopped"
    return Panel(
        Text(body, style=f"bold {_text_color(state.text_color)}", justify="center"),
        title=channel,
        subtitle=f"{state.mode} | {status} | {state.end_behavior}",
    )


async def watch(url: str, channel: str, fps: float) -> None:
    console = Console()
    with Live(render(TimerPredictor(), channel), console=console, auto_refresh=False) as live:

        def on_frame(predictor: TimerPredictor) -> None:
            live.update(render(predictor, channel), refresh=True)

        def on_end(data: dict) -> None:
            console.log(f"Timer ended ({data.get('behavior')})")

        def on_error(message: str) -> None:
            console.log(f"[red]Error:[/red] {message}")

        client = OverlayClient(
            url, channel, on_frame=on_frame, on_end=on_end, on_error=on_error, fps=fps
        )
        await client.run()


def main() -> None:
    parser = argparse.ArgumentParser(description="Watch an obs-timer channel in the terminal")
    parser.add_argument("channel", help="Channel to join")
    parser.add_argument(
        "--url", default=DEFAULT_URL, help=f"Session WebSocket URL (default: {DEFAULT_URL})"
    )
    parser.add_argument("--fps", type=float, default=10, help="Redraws per second (default: 10)")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    args = parser.parse_args()

    setup_logging(Settings(log_level=args.log_level))

    try:
        asyncio.run(watch(args.url, args.channel, args.fps))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
