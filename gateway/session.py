"""Per-connection realtime session: chat → LLM → TTS over one WebSocket.

Messages on a connection are handled strictly one at a time in arrival
order; the read loop awaits each message's full upstream round trip before
reading the next frame. Different connections interleave freely.
"""

import logging

from aiohttp import WSMsgType, web

from engine.llm import TextGenerator
from engine.tts import SpeechSynthesizer
from engine.types import UpstreamError
from gateway import protocol
from gateway.protocol import ChatMessage, MalformedMessage
from gateway.registry import ConnectionRegistry

log = logging.getLogger("session")


class RealtimeSession:
    """Drives one WebSocket connection from admit to evict."""

    def __init__(
        self,
        ws: web.WebSocketResponse,
        registry: ConnectionRegistry,
        text_generator: TextGenerator,
        synthesizer: SpeechSynthesizer,
    ):
        self.ws = ws
        self.registry = registry
        self.text_generator = text_generator
        self.synthesizer = synthesizer

    async def run(self) -> None:
        await self.registry.admit(self.ws)
        try:
            async for raw in self.ws:
                if raw.type == WSMsgType.TEXT:
                    await self.handle_text(raw.data)
                elif raw.type == WSMsgType.ERROR:
                    # Connection is unusable, so nothing is sent back
                    log.error("WebSocket transport error: %s", self.ws.exception())
                    break
        finally:
            await self.registry.evict(self.ws)

    async def handle_text(self, data: str) -> None:
        """Handle one inbound text frame. Never raises for bad input or upstream failures."""
        try:
            msg = protocol.parse_inbound(data)
        except MalformedMessage as e:
            log.warning("Malformed message: %s", e)
            await self._send(protocol.error("Invalid message"))
            return

        log.debug("WS recv: %s", msg.type)
        try:
            if isinstance(msg, ChatMessage):
                await self._handle_chat(msg.text or "")
            else:
                await self._handle_audio_request(msg.text or "")
        except Exception:
            log.exception("Unhandled error processing %s message", msg.type)
            await self._send(protocol.error("Internal server error"))

    async def _handle_chat(self, text: str) -> None:
        # Empty prompts are forwarded; the upstream decides
        try:
            reply = await self.text_generator.generate_reply(text)
        except UpstreamError as e:
            log.error("LLM error: %s", e)
            await self._send(protocol.error("Error generating reply"))
            return

        log.info("Agent reply: %r", reply[:80])
        await self._send(protocol.response(reply))

        try:
            audio = await self.synthesizer.synthesize(reply)
        except UpstreamError as e:
            log.error("TTS error: %s", e)
            await self._send(protocol.error("Error generating audio"))
            return
        await self._send(protocol.audio(audio))

    async def _handle_audio_request(self, text: str) -> None:
        if not text:
            return
        try:
            audio = await self.synthesizer.synthesize(text)
        except UpstreamError as e:
            log.error("TTS error: %s", e)
            await self._send(protocol.error("Error generating audio"))
            return
        await self._send(protocol.audio(audio))

    async def _send(self, frame: dict) -> None:
        if self.ws.closed:
            log.debug("Dropping %s frame for closed connection", frame["type"])
            return
        try:
            await self.ws.send_json(frame)
        except ConnectionError as e:
            log.debug("Send failed (%s), connection closing", e)
