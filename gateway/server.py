"""Relay server: HTTP TTS endpoints, health, static client and WebSocket sessions."""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from aiohttp import web
from dotenv import load_dotenv

load_dotenv()  # Must be before settings import so they see .env vars

from engine.llm import TextGenerator
from engine.tts import SpeechSynthesizer
from engine.types import UpstreamError
from gateway import protocol
from gateway.config import Settings, settings as default_settings
from gateway.registry import ConnectionRegistry
from gateway.session import RealtimeSession

log = logging.getLogger("gateway")

WEB_DIR = Path(__file__).resolve().parent.parent / "web"

SETTINGS = web.AppKey("settings", Settings)
REGISTRY = web.AppKey("registry", ConnectionRegistry)
TEXT_GENERATOR = web.AppKey("text_generator", TextGenerator)
SYNTHESIZER = web.AppKey("synthesizer", SpeechSynthesizer)


class InvalidRequest(ValueError):
    """A TTS request body is unusable (HTTP 400)."""


def _error(status: int, message: str) -> web.Response:
    return web.json_response({"error": message}, status=status)


async def _read_tts_request(request: web.Request) -> tuple[str, Optional[str]]:
    """Extract (text, voice_id) from a JSON body."""
    try:
        body = await request.json()
    except ValueError as e:
        raise InvalidRequest("Invalid JSON body") from e
    if not isinstance(body, dict):
        raise InvalidRequest("Invalid JSON body")

    text = body.get("text")
    if not text or not isinstance(text, str):
        raise InvalidRequest("Text is required")

    voice_id = body.get("voiceId") or None
    if voice_id is not None and not isinstance(voice_id, str):
        raise InvalidRequest("voiceId must be a string")
    return text, voice_id


# ── HTTP routes ───────────────────────────────────────────────

async def handle_index(request: web.Request) -> web.StreamResponse:
    """Serve the browser client, or upgrade to a WebSocket session."""
    if web.WebSocketResponse().can_prepare(request).ok:
        return await handle_ws(request)
    return web.FileResponse(WEB_DIR / "index.html")


async def handle_health(request: web.Request) -> web.Response:
    return web.json_response({
        "status": "ok",
        "clients": len(request.app[REGISTRY]),
        "timestamp": protocol.utc_timestamp(),
    })


async def handle_tts(request: web.Request) -> web.Response:
    """Buffered synthesis: the whole MPEG payload in one response."""
    try:
        text, voice_id = await _read_tts_request(request)
    except InvalidRequest as e:
        return _error(400, str(e))

    try:
        audio = await request.app[SYNTHESIZER].synthesize(text, voice_id)
    except UpstreamError as e:
        log.error("TTS error: %s", e)
        return _error(500, "Error generating audio")

    return web.Response(body=audio, content_type="audio/mpeg")


async def handle_tts_stream(request: web.Request) -> web.StreamResponse:
    """Streaming synthesis: upstream chunks are forwarded as they arrive."""
    try:
        text, voice_id = await _read_tts_request(request)
    except InvalidRequest as e:
        return _error(400, str(e))

    try:
        stream = await request.app[SYNTHESIZER].synthesize_stream(text, voice_id)
    except UpstreamError as e:
        log.error("TTS stream error: %s", e)
        return _error(500, "Error generating audio")

    resp = web.StreamResponse(headers={"Content-Type": "audio/mpeg"})
    resp.enable_chunked_encoding()
    sent = 0
    try:
        await resp.prepare(request)
        async for chunk in stream:
            await resp.write(chunk)
            sent += len(chunk)
    except UpstreamError as e:
        # Headers are gone already. Drop the connection without the final
        # chunk so the client sees an incomplete transfer, not a short file.
        log.error("TTS stream interrupted after %d bytes, aborting response: %s", sent, e)
        if request.transport is not None:
            request.transport.close()
        return resp
    except ConnectionResetError:
        log.info("Client left during TTS stream after %d bytes", sent)
        return resp
    finally:
        await stream.aclose()

    await resp.write_eof()
    log.info("TTS stream sent %d bytes", sent)
    return resp


# ── WebSocket handler ─────────────────────────────────────────

async def handle_ws(request: web.Request) -> web.WebSocketResponse:
    ws = web.WebSocketResponse()
    await ws.prepare(request)
    log.info("WebSocket connected from %s", request.remote)

    app = request.app
    session = RealtimeSession(ws, app[REGISTRY], app[TEXT_GENERATOR], app[SYNTHESIZER])
    await session.run()

    log.info("WebSocket disconnected")
    return ws


# ── Middleware & lifecycle ────────────────────────────────────

@web.middleware
async def cors_preflight_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Answer CORS preflight requests; every other request goes to its route."""
    if request.method == "OPTIONS" and "Access-Control-Request-Method" in request.headers:
        resp = web.Response(status=204)
        resp.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        resp.headers["Access-Control-Allow-Headers"] = request.headers.get(
            "Access-Control-Request-Headers", "Content-Type"
        )
        return resp
    return await handler(request)


async def _add_cors_headers(request: web.Request, response: web.StreamResponse) -> None:
    """on_response_prepare hook: runs for streamed and error responses too."""
    origins = request.app[SETTINGS].cors_origins
    origin = request.headers.get("Origin")
    if "*" in origins:
        response.headers["Access-Control-Allow-Origin"] = "*"
    elif origin and origin in origins:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Vary"] = "Origin"


def _log_loop_exception(loop: asyncio.AbstractEventLoop, context: dict) -> None:
    """Log anything that escapes a task; the server keeps running."""
    log.error(
        "Unhandled error in event loop: %s",
        context.get("message", "unknown"),
        exc_info=context.get("exception"),
    )


async def _on_startup(app: web.Application) -> None:
    asyncio.get_running_loop().set_exception_handler(_log_loop_exception)
    cfg = app[SETTINGS]
    if not cfg.gemini_api_key:
        log.warning("GEMINI_API_KEY is not set; chat requests will fail")
    if not cfg.elevenlabs_api_key:
        log.warning("ELEVENLABS_API_KEY is not set; audio requests will fail")


async def _on_cleanup(app: web.Application) -> None:
    await app[TEXT_GENERATOR].close()
    await app[SYNTHESIZER].close()


# ── App setup ─────────────────────────────────────────────────

def create_app(
    cfg: Optional[Settings] = None,
    registry: Optional[ConnectionRegistry] = None,
    text_generator: Optional[TextGenerator] = None,
    synthesizer: Optional[SpeechSynthesizer] = None,
) -> web.Application:
    cfg = cfg or default_settings

    app = web.Application(middlewares=[cors_preflight_middleware])
    app[SETTINGS] = cfg
    app[REGISTRY] = registry or ConnectionRegistry()
    app[TEXT_GENERATOR] = text_generator or TextGenerator(
        api_key=cfg.gemini_api_key,
        model=cfg.gemini_model,
        system=cfg.system_prompt,
        base_url=cfg.gemini_base_url,
        timeout=cfg.upstream_timeout,
    )
    app[SYNTHESIZER] = synthesizer or SpeechSynthesizer(
        api_key=cfg.elevenlabs_api_key,
        base_url=cfg.elevenlabs_base_url,
        voice_id=cfg.elevenlabs_voice_id,
        model_id=cfg.elevenlabs_model_id,
        stability=cfg.tts_stability,
        similarity_boost=cfg.tts_similarity_boost,
        timeout=cfg.upstream_timeout,
    )

    app.router.add_get("/", handle_index)
    app.router.add_get("/ws", handle_ws)
    app.router.add_get("/health", handle_health)
    app.router.add_post("/api/tts", handle_tts)
    app.router.add_post("/api/tts-stream", handle_tts_stream)
    app.router.add_post("/synthesize", handle_tts)
    app.router.add_post("/synthesize/stream", handle_tts_stream)
    app.router.add_static("/static", WEB_DIR, show_index=False)

    app.on_response_prepare.append(_add_cors_headers)
    app.on_startup.append(_on_startup)
    app.on_cleanup.append(_on_cleanup)
    return app


def setup_logging(cfg: Settings) -> Path:
    cfg.log_dir.mkdir(parents=True, exist_ok=True)
    log_file = cfg.log_dir / "server.log"
    level = getattr(logging, cfg.log_level.upper(), logging.INFO)

    fmt = logging.Formatter("%(asctime)s %(name)-12s %(levelname)-8s %(message)s")

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(fmt)

    filelog = logging.FileHandler(log_file)
    filelog.setLevel(level)
    filelog.setFormatter(fmt)

    logging.basicConfig(level=level, handlers=[console, filelog])

    # Silence per-request HTTP client chatter
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    return log_file


def main() -> None:
    cfg = default_settings
    log_file = setup_logging(cfg)
    log.info("Logging to %s", log_file)

    app = create_app(cfg)
    log.info("Serving on http://%s:%d", cfg.host, cfg.port)
    log.info("WebSocket available at ws://localhost:%d", cfg.port)
    log.info("Interface at http://localhost:%d", cfg.port)
    web.run_app(app, host=cfg.host, port=cfg.port, print=None)


if __name__ == "__main__":
    main()
