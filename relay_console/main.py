"""Terminal client for the voice relay.

Run with: python -m relay_console.main [--url ws://host:port/ws] [--save-audio DIR] [--debug]

Features:
  - Rich colored output (green=you, blue=assistant, dim=notifications, red=errors)
  - Frames from the server are printed as they arrive, including join/leave notices
  - Optionally writes every received audio frame to DIR as an .mp3 file
  - Commands: quit/exit/q, /say <text> (speech only, no LLM)
"""

from __future__ import annotations

import argparse
import asyncio
import base64
import json
import logging
from pathlib import Path
from typing import Optional

import aiohttp
from rich.console import Console
from rich.text import Text

from gateway.config import settings

console = Console()

log = logging.getLogger("relay_console")


def _setup_logging(debug: bool) -> None:
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)-14s %(levelname)-7s %(message)s",
        datefmt="%H:%M:%S",
    )


def frame_for_input(line: str) -> Optional[dict]:
    """Turn a typed line into an outbound frame. None for blank input."""
    line = line.strip()
    if not line:
        return None
    if line.startswith("/say"):
        return {"type": "audioRequest", "text": line[len("/say"):].strip()}
    return {"type": "chat", "text": line}


def render_frame(frame: dict) -> Text:
    kind = frame.get("type")
    if kind == "response":
        return Text.assemble(("Assistant: ", "bold blue"), frame.get("text", ""))
    if kind == "notification":
        return Text(f"  {frame.get('message', '')}", style="dim")
    if kind == "error":
        return Text(f"Error: {frame.get('message', '')}", style="red")
    if kind == "audio":
        size = len(base64.b64decode(frame.get("data", "")))
        return Text(f"  [audio: {size} bytes]", style="cyan dim")
    return Text(f"  {json.dumps(frame)}", style="dim")


def save_audio(frame: dict, directory: Path, index: int) -> Path:
    """Decode an audio frame and write it to DIR/reply-NNN.mp3."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"reply-{index:03d}.mp3"
    path.write_bytes(base64.b64decode(frame["data"]))
    return path


async def _print_frames(ws: aiohttp.ClientWebSocketResponse, audio_dir: Optional[Path]) -> None:
    audio_count = 0
    async for msg in ws:
        if msg.type != aiohttp.WSMsgType.TEXT:
            continue
        try:
            frame = json.loads(msg.data)
        except json.JSONDecodeError:
            log.warning("Server sent non-JSON frame: %r", msg.data[:80])
            continue
        console.print(render_frame(frame))
        if frame.get("type") == "audio" and audio_dir is not None:
            audio_count += 1
            path = save_audio(frame, audio_dir, audio_count)
            console.print(f"  [dim]saved {path}[/]")
    console.print("[dim]Connection closed by server.[/]")


async def _run_repl(url: str, audio_dir: Optional[Path]) -> None:
    loop = asyncio.get_running_loop()
    async with aiohttp.ClientSession() as http:
        try:
            ws = await http.ws_connect(url)
        except aiohttp.ClientError as e:
            console.print(f"[red]Cannot connect to {url}: {e}[/]")
            return

        console.print(f"[bold]Voice Relay[/] [dim]({url})[/]")
        console.print("[dim]Type 'quit' to exit, '/say <text>' to synthesize without the LLM.[/]\n")

        reader = asyncio.create_task(_print_frames(ws, audio_dir))
        try:
            while not ws.closed:
                try:
                    line = await loop.run_in_executor(None, console.input, "[bold green]You:[/] ")
                except (EOFError, KeyboardInterrupt):
                    console.print("\n[dim]Goodbye![/]")
                    break

                if line.strip().lower() in ("quit", "exit", "q"):
                    console.print("[dim]Goodbye![/]")
                    break

                frame = frame_for_input(line)
                if frame is None:
                    continue
                await ws.send_json(frame)
        finally:
            await ws.close()
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass


def main() -> None:
    parser = argparse.ArgumentParser(description="Voice Relay console client")
    parser.add_argument("--url", default=f"ws://localhost:{settings.port}/ws", help="Relay WebSocket URL")
    parser.add_argument("--save-audio", type=Path, default=None, metavar="DIR", help="Write received audio here")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    _setup_logging(args.debug)
    asyncio.run(_run_repl(args.url, args.save_audio))


if __name__ == "__main__":
    main()
