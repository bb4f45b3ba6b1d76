"""
Word Coop signaling relay.

A WebSocket hub that pairs two anonymous clients per session and forwards
their connection handshake verbatim until a direct data channel exists.
The relay never looks at game traffic.
"""
import asyncio
from typing import Optional

from aiohttp import web, WSMsgType

from wordcoop.core.config import RelayConfig
from wordcoop.core.exceptions import SessionError
from wordcoop.core.logging import LoggerMixin, setup_logging, debug_log
from wordcoop.relay.frames import FrameKind, RELAYED_KINDS, parse_frame
from wordcoop.relay.sessions import SessionRegistry


class RelayServer(LoggerMixin):
    """Routes relay frames to the session registry and runs the expiry sweep."""

    def __init__(self, config: RelayConfig, registry: Optional[SessionRegistry] = None):
        super().__init__()
        self.config = config
        self.registry = registry or SessionRegistry(config)
        self._sweep_task: Optional[asyncio.Task] = None

        debug_log(f"🚀 [Relay] Relay server initialized", {"config": str(config)}, logger=self.logger)

    async def start(self, app: Optional[web.Application] = None):
        """Start the periodic session sweep."""
        if self._sweep_task is None:
            self._sweep_task = asyncio.create_task(self._run_sweeper())
        self.log_info("⏰ [Relay] Session sweep started", {"interval_ms": self.config.sweep_interval_ms})

    async def cleanup(self, app: Optional[web.Application] = None):
        """Stop the sweep and force-close every remaining session."""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
        await self.registry.close_all()
        self.log_info("🧹 [Relay] Relay cleanup completed")

    async def _run_sweeper(self):
        while True:
            await asyncio.sleep(self.config.sweep_interval)
            try:
                await self.registry.sweep()
            except Exception as e:
                self.log_error("Session sweep failed", {
                    "error": str(e),
                    "error_type": type(e).__name__
                })

    async def handle_frame(self, ws, text: str):
        """Handle one inbound frame. Failures are logged and never close the socket."""
        try:
            frame = parse_frame(text)
        except ValueError as e:
            self.log_warning("Malformed relay frame ignored", {
                "error": str(e),
                "frame": text[:200]
            })
            return

        try:
            if frame.kind == FrameKind.REQUEST_SESSION_ID:
                session_id = self.registry.request_session_id()
                await ws.send_str(session_id)
            elif frame.kind == FrameKind.JOIN_SESSION:
                await self.registry.join(ws, frame.session_id)
            elif frame.kind in RELAYED_KINDS:
                await self.registry.relay(ws, frame, text)
            else:
                self.log_warning("Frame kind is not accepted from clients", {"kind": frame.kind.value})
        except SessionError as e:
            self.log_warning(f"Relay request rejected: {e}", {"kind": frame.kind.value})
        except Exception as e:
            self.log_error("Error handling relay frame", {
                "kind": frame.kind.value,
                "error": str(e),
                "error_type": type(e).__name__
            })

    def get_status(self) -> dict:
        return {
            "server_type": "relay",
            "config": {
                "session_ttl_ms": self.config.session_ttl_ms,
                "session_id_length": self.config.session_id_length,
                "sweep_interval_ms": self.config.sweep_interval_ms
            },
            "sessions": self.registry.get_status()
        }


async def handle_websocket(request):
    """Handle one relay client for the lifetime of its socket."""
    server: RelayServer = request.app['relay']
    ws = web.WebSocketResponse()
    await ws.prepare(request)

    debug_log(f"🔌 [WebSocket] Relay client connected", {"remote": request.remote})

    try:
        async for msg in ws:
            if msg.type == WSMsgType.TEXT:
                await server.handle_frame(ws, msg.data)
            elif msg.type == WSMsgType.BINARY:
                try:
                    text = msg.data.decode("utf-8")
                except UnicodeDecodeError:
                    server.log_warning("Undecodable binary frame ignored", {"length": len(msg.data)})
                    continue
                await server.handle_frame(ws, text)
            elif msg.type == WSMsgType.ERROR:
                debug_log(f"❌ [WebSocket] Relay client error", {"error": str(ws.exception())}, "WARNING")
                break
    finally:
        await server.registry.leave(ws)
        debug_log(f"🔌 [WebSocket] Relay client disconnected", {"remote": request.remote})

    return ws


async def handle_status(request):
    """Handle status request."""
    server: RelayServer = request.app['relay']
    return web.json_response(server.get_status())


async def handle_ice_servers(request):
    """Hand the configured ICE servers to a client."""
    server: RelayServer = request.app['relay']
    return web.json_response([entry.to_dict() for entry in server.config.ice_servers])


def create_app(config: Optional[RelayConfig] = None, server: Optional[RelayServer] = None) -> web.Application:
    """Build the aiohttp application serving the relay."""
    server = server or RelayServer(config or RelayConfig())

    app = web.Application()
    app['relay'] = server
    app.router.add_get("/", handle_websocket)
    app.router.add_get("/status", handle_status)
    app.router.add_get("/ice-servers", handle_ice_servers)
    app.on_startup.append(server.start)
    app.on_cleanup.append(server.cleanup)
    return app


async def main():
    """Main relay function."""
    setup_logging(log_file="wordcoop_relay.log")
    config = RelayConfig()
    debug_log(f"🚀 [Main] Starting Word Coop relay", {"config": str(config)})

    app = create_app(config)
    runner = web.AppRunner(app)
    await runner.setup()

    try:
        site = web.TCPSite(runner, config.host, config.port)
        await site.start()
        debug_log(f"✅ [Main] Relay listening on ws://{config.host}:{config.port}")

        await asyncio.Future()
    finally:
        await runner.cleanup()


def run():
    """Console script entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
