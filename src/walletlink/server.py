#!/usr/bin/env python3
"""
Wallet bridge server.

Serves the WebSocket endpoint the browser page connects to, relays wallet
provider requests to it and pushes session state back.

Usage: walletlink-server --port 8001
"""

import argparse
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional, Set

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from .address import AddressFormatter
from .balance import BalanceResolver
from .bridge import BrowserBridge
from .chains import ChainRegistry
from .commands import SessionCommand, dispatch
from .config import Settings
from .errors import WalletLinkError
from .providers.injected import InjectedWalletProvider
from .session import ConnectionSession
from .wallets import WalletPlatform, WalletRegistry

logger = logging.getLogger(__name__)


def build_session(
    settings: Settings,
    bridge: BrowserBridge,
    balance_resolver: Optional[BalanceResolver] = None,
) -> ConnectionSession:
    """Wire registries, providers and the balance resolver around the bridge."""
    wallets = WalletRegistry(bridge)
    chains = ChainRegistry.from_settings(settings)
    if balance_resolver is None:
        balance_resolver = BalanceResolver(timeout=settings.balance_timeout)

    return ConnectionSession(
        wallets=wallets,
        chains=chains,
        provider_factory=lambda wallet: InjectedWalletProvider(
            bridge, wallet, settings.app_name
        ),
        balance_resolver=balance_resolver,
        formatter=AddressFormatter(settings.fallback_ss58_prefix),
        connect_timeout=settings.connect_timeout,
        switch_timeout=settings.switch_timeout,
    )


def create_app(
    settings: Optional[Settings] = None,
    bridge: Optional[BrowserBridge] = None,
    session: Optional[ConnectionSession] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    bridge = bridge or BrowserBridge()
    session = session or build_session(settings, bridge)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if session.balance_resolver is not None:
            await session.balance_resolver.close()

    app = FastAPI(title="walletlink bridge", lifespan=lifespan)
    app.state.settings = settings
    app.state.bridge = bridge
    app.state.session = session

    command_tasks: Set[asyncio.Task] = set()

    def state_message() -> dict:
        return {"type": "state", "session": session.snapshot().to_dict(session.formatter)}

    session.subscribe(lambda snapshot: bridge.schedule_broadcast(
        {"type": "state", "session": snapshot.to_dict(session.formatter)}
    ))
    session.subscribe_notices(lambda message: bridge.schedule_broadcast(
        {"type": "notice", "message": message}
    ))

    async def run_command(websocket: WebSocket, action: str) -> None:
        try:
            command = SessionCommand.parse(action)
            await dispatch(session, command)
        except WalletLinkError as e:
            await _send_error(websocket, e.kind, e.message)
        except ValueError as e:
            await _send_error(websocket, "InvalidCommand", str(e))

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "connections": len(bridge.active_connections),
            "session": session.status.value,
        }

    @app.get("/state")
    async def get_state():
        return state_message()["session"]

    @app.get("/wallets")
    async def get_wallets():
        """Browser wallets with their installation state."""
        return [
            dict(wallet.to_dict(), installed=session.wallets.is_installed(wallet))
            for wallet in session.wallets.list_wallets(WalletPlatform.BROWSER)
        ]

    @app.get("/chains")
    async def get_chains():
        active = session.active_chain.network
        return [
            dict(chain.to_dict(), active=chain.network == active)
            for chain in session.chains.list_supported_chains()
        ]

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """Bridge between the page's wallet extensions and the session"""
        await websocket.accept()
        bridge.attach(websocket)

        try:
            await websocket.send_json(state_message())

            while True:
                message = await websocket.receive_json()
                msg_type = message.get("type")

                if msg_type == "environment":
                    bridge.set_extensions(message.get("extensions", []))

                elif msg_type == "response":
                    bridge.handle_response(message)

                elif msg_type == "command":
                    # run detached so this loop keeps reading provider responses
                    task = asyncio.create_task(
                        run_command(websocket, message.get("action", ""))
                    )
                    command_tasks.add(task)
                    task.add_done_callback(command_tasks.discard)

                else:
                    logger.warning(f"Unknown message type: {msg_type}")

        except WebSocketDisconnect:
            pass
        except Exception as e:
            logger.error(f"WebSocket error: {e}")
        finally:
            bridge.detach(websocket)

    return app


async def _send_error(websocket: WebSocket, kind: str, message: str) -> None:
    try:
        await websocket.send_json({"type": "error", "kind": kind, "message": message})
    except Exception as e:
        logger.error(f"Error reporting {kind} to client: {e}")


def main() -> None:
    import uvicorn

    settings = Settings.from_env()

    parser = argparse.ArgumentParser(description="Wallet bridge server")
    parser.add_argument("--host", default=settings.host, help=f"Host to bind (default: {settings.host})")
    parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help=f"Port to run the server on (default: {settings.port})",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    logger.info("=" * 60)
    logger.info("Wallet bridge starting...")
    logger.info(f"Supported chains: {', '.join(settings.supported_chains)}")
    logger.info(f"WebSocket endpoint: ws://{args.host}:{args.port}/ws")
    logger.info("=" * 60)

    uvicorn.run(
        create_app(settings),
        host=args.host,
        port=args.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
