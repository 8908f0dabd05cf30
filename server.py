import sys
import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from loguru import logger
from mcp.server.fastmcp import FastMCP, Context

from config import Settings, load_settings
from engine import PoolEngine
from errors import InitializationError, ParseError
from formatter import format_failure, format_outcome
from ledger import LedgerContext, connect_ledger
from models import Amount
from observability import setup_observability


@dataclass
class AppContext:
    settings: Settings
    ledger: LedgerContext
    engine: PoolEngine
    # Un único signer: como mucho un workflow mutante en vuelo a la vez
    signer_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def render(self, outcome):
        return format_outcome(outcome, self.settings.token_decimals, self.settings.native_decimals)


class AppRuntime:
    """
    Dueño del AppContext del proceso. connect() se ejecuta UNA sola vez (tarea memoizada);
    las sesiones concurrentes esperan la misma tarea y comparten ledger, engine y lock.
    """

    def __init__(self, settings, connect=None):
        self.settings = settings
        self.connect = connect or connect_ledger
        self._task = None

    async def context(self):
        if self._task is None:
            self._task = asyncio.ensure_future(self._build())
        # shield: cancelar una sesión no debe cancelar la conexión compartida
        return await asyncio.shield(self._task)

    async def _build(self):
        ledger = await self.connect(self.settings)
        return AppContext(settings=self.settings, ledger=ledger, engine=PoolEngine(ledger))

    async def close(self):
        if self._task is None or not self._task.done() or self._task.cancelled():
            return
        if self._task.exception() is None:
            await self._task.result().ledger.close()


async def handle_add_liquidity(app, amount_of_token, eth_amount):
    # Parseo ANTES de tocar el ledger (y antes de coger el lock)
    try:
        token_amount = Amount.parse(amount_of_token, app.settings.token_decimals)
        eth = Amount.parse(eth_amount, app.settings.native_decimals)
    except ParseError as e:
        logger.warning(f"🚫 [addLiquidity] Importe inválido: {e.reason}")
        return format_failure("addLiquidity", e.reason)

    async with app.signer_lock:
        outcome = await app.engine.run_liquidity_provision(token_amount, eth)
    return app.render(outcome)


async def handle_token_to_eth_swap(app, tokens_to_swap, min_eth_to_receive):
    try:
        tokens = Amount.parse(tokens_to_swap, app.settings.token_decimals)
        min_eth = Amount.parse(min_eth_to_receive, app.settings.native_decimals)
    except ParseError as e:
        logger.warning(f"🚫 [tokenToEthSwap] Importe inválido: {e.reason}")
        return format_failure("tokenToEthSwap", e.reason)

    async with app.signer_lock:
        outcome = await app.engine.run_swap(tokens, min_eth)
    return app.render(outcome)


async def handle_pool_state(app):
    # Solo lectura: no necesita el lock del signer
    return app.render(await app.engine.read_pool_state())


def create_server(runtime):
    """
    Construye el servidor MCP. Cada sesión (stdio, SSE, streamable-http) entra en el lifespan,
    pero todas reciben el MISMO AppContext del runtime: una conexión y un lock por proceso.
    """

    @asynccontextmanager
    async def lifespan(server):
        yield await runtime.context()

    mcp = FastMCP("UniswapMCP", lifespan=lifespan)

    def _app(ctx):
        return ctx.request_context.lifespan_context

    @mcp.tool(name="addLiquidity")
    async def add_liquidity(amountOfToken: str, ethAmount: str, ctx: Context) -> str:
        """Add liquidity to the pool: deposits `amountOfToken` tokens plus `ethAmount` ETH (decimal strings, 18 decimals)."""
        return await handle_add_liquidity(_app(ctx), amountOfToken, ethAmount)

    @mcp.tool(name="tokenToEthSwap")
    async def token_to_eth_swap(tokensToSwap: str, minEthToReceive: str, ctx: Context) -> str:
        """Swap `tokensToSwap` tokens for ETH. Reverts ledger-side if less than `minEthToReceive` ETH would be received."""
        return await handle_token_to_eth_swap(_app(ctx), tokensToSwap, minEthToReceive)

    @mcp.tool(name="getPoolState")
    async def get_pool_state(ctx: Context) -> str:
        """Read the pool's current token reserve and ETH balance."""
        return await handle_pool_state(_app(ctx))

    @mcp.resource("liquidity://pool")
    async def liquidity_pool() -> str:
        """Current liquidity state of the pool."""
        return await handle_pool_state(_app(mcp.get_context()))

    return mcp


async def serve(mcp, runtime, transport):
    # La conexión se establece ANTES de aceptar sesiones: si falla, no se sirve nada
    await runtime.context()
    try:
        if transport == "sse":
            await mcp.run_sse_async()
        elif transport == "streamable-http":
            await mcp.run_streamable_http_async()
        else:
            await mcp.run_stdio_async()
    finally:
        await runtime.close()


def main():
    try:
        settings = load_settings()
    except Exception as e:
        logger.critical(f"💀 Configuración inválida: {e}")
        sys.exit(1)

    setup_observability(settings)
    runtime = AppRuntime(settings)
    mcp = create_server(runtime)

    logger.info(f"🛰️ UniswapMCP arrancando (transport={settings.transport})")
    try:
        asyncio.run(serve(mcp, runtime, settings.transport))
    except InitializationError as e:
        logger.critical(f"💀 Ledger no disponible, el servidor no arranca: {e.reason}")
        sys.exit(1)
    except Exception as e:
        logger.critical(f"💀 El servidor se detuvo con error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
