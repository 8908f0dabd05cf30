import asyncio
from dataclasses import dataclass

import aiohttp
from loguru import logger
from web3 import AsyncWeb3, AsyncHTTPProvider
from web3.exceptions import (
    ContractLogicError,
    ProviderConnectionError,
    TimeExhausted,
    Web3Exception,
    Web3RPCError,
)

from errors import (
    PoolError,
    LedgerRejection,
    ConnectivityError,
    ConfirmationTimeout,
    InitializationError,
)
from models import PendingTransaction, TransactionReceipt

# ABIs mínimos: solo las funciones que usan los workflows
EXCHANGE_ABI = [
    {
        "type": "function", "name": "addLiquidity", "stateMutability": "payable",
        "inputs": [{"name": "amountOfToken", "type": "uint256"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function", "name": "tokenToEthSwap", "stateMutability": "nonpayable",
        "inputs": [
            {"name": "tokensToSwap", "type": "uint256"},
            {"name": "minEthToReceive", "type": "uint256"},
        ],
        "outputs": [],
    },
    {
        "type": "function", "name": "getReserve", "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]

ERC20_ABI = [
    {
        "type": "function", "name": "approve", "stateMutability": "nonpayable",
        "inputs": [
            {"name": "spender", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "type": "function", "name": "allowance", "stateMutability": "view",
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "spender", "type": "address"},
        ],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]


def classify_error(exc):
    """Traduce excepciones de web3/aiohttp a la taxonomía de PoolError."""
    if isinstance(exc, PoolError):
        return exc
    if isinstance(exc, TimeExhausted):
        return ConfirmationTimeout(str(exc) or "timed out waiting for confirmation")
    # Reverts: el motivo del contrato pasa tal cual ("INSUFFICIENT_LIQUIDITY", ...)
    if isinstance(exc, ContractLogicError):
        return LedgerRejection(getattr(exc, "message", None) or str(exc))
    if isinstance(exc, Web3RPCError):
        return LedgerRejection(getattr(exc, "message", None) or str(exc))
    if isinstance(exc, (ProviderConnectionError, aiohttp.ClientError, asyncio.TimeoutError, OSError)):
        return ConnectivityError(str(exc) or f"ledger node unreachable ({type(exc).__name__})")
    if isinstance(exc, Web3Exception):
        return LedgerRejection(str(exc))
    return PoolError(str(exc))


@dataclass
class LedgerContext:
    """
    Conexión explícita al ledger: provider, signer y contratos ya enlazados.
    Se construye UNA vez (connect_ledger) y se inyecta en cada workflow.
    """
    w3: AsyncWeb3
    signer: str
    exchange_address: str
    token_address: str
    exchange: object
    token: object
    receipt_timeout: float = 120.0

    async def _guard(self, label, call):
        try:
            return await call()
        except Exception as e:
            error = classify_error(e)
            logger.warning(f"⚠️ [LEDGER] {label} falló ({error.kind}): {error.reason}")
            raise error from e

    async def get_signer_address(self):
        return self.signer

    async def get_allowance(self, owner, spender):
        return await self._guard(
            "allowance", lambda: self.token.functions.allowance(owner, spender).call()
        )

    async def submit_approval(self, spender, amount):
        tx_hash = await self._guard(
            "approve",
            lambda: self.token.functions.approve(spender, amount).transact({"from": self.signer}),
        )
        logger.info(f"📝 [LEDGER] approve({amount}) enviado: {AsyncWeb3.to_hex(tx_hash)}")
        return PendingTransaction(tx_hash=AsyncWeb3.to_hex(tx_hash), label="approve")

    async def submit_add_liquidity(self, token_amount, value):
        tx_hash = await self._guard(
            "addLiquidity",
            lambda: self.exchange.functions.addLiquidity(token_amount).transact(
                {"from": self.signer, "value": value}
            ),
        )
        logger.info(f"📝 [LEDGER] addLiquidity enviado: {AsyncWeb3.to_hex(tx_hash)}")
        return PendingTransaction(tx_hash=AsyncWeb3.to_hex(tx_hash), label="addLiquidity")

    async def submit_token_to_eth_swap(self, tokens_to_swap, min_eth_to_receive):
        tx_hash = await self._guard(
            "tokenToEthSwap",
            lambda: self.exchange.functions.tokenToEthSwap(tokens_to_swap, min_eth_to_receive).transact(
                {"from": self.signer}
            ),
        )
        logger.info(f"📝 [LEDGER] tokenToEthSwap enviado: {AsyncWeb3.to_hex(tx_hash)}")
        return PendingTransaction(tx_hash=AsyncWeb3.to_hex(tx_hash), label="tokenToEthSwap")

    async def wait_for_confirmation(self, pending):
        """Espera el receipt. status == 0 (revert minado) es un LedgerRejection."""
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                pending.tx_hash, timeout=self.receipt_timeout
            )
        except Exception as e:
            error = classify_error(e)
            if isinstance(error, ConfirmationTimeout):
                error.tx_hash = pending.tx_hash
            logger.warning(f"⏳ [LEDGER] confirmación de {pending.label} falló ({error.kind}): {error.reason}")
            raise error from e

        tx_hash = AsyncWeb3.to_hex(receipt["transactionHash"])
        if receipt["status"] != 1:
            raise LedgerRejection(f"{pending.label} transaction reverted ({tx_hash})")

        logger.info(f"⛓️ [LEDGER] {pending.label} confirmado en bloque {receipt['blockNumber']}: {tx_hash}")
        return TransactionReceipt(tx_hash=tx_hash, block_number=receipt["blockNumber"], status=receipt["status"])

    async def get_reserve(self):
        return await self._guard("getReserve", lambda: self.exchange.functions.getReserve().call())

    async def get_native_balance(self, address):
        return await self._guard("getBalance", lambda: self.w3.eth.get_balance(address))

    async def close(self):
        try:
            await self.w3.provider.disconnect()
        except Exception as e:
            logger.warning(f"⚠️ [LEDGER] Error cerrando provider: {e}")


async def connect_ledger(settings):
    """
    Rutina única de inicialización. Devuelve un LedgerContext listo o lanza InitializationError.
    No hay fallback: si falla, ninguna herramienta puede funcionar.
    """
    logger.info(f"🔌 [LEDGER] Conectando a {settings.rpc_url}...")
    try:
        w3 = AsyncWeb3(AsyncHTTPProvider(
            settings.rpc_url,
            request_kwargs={"timeout": aiohttp.ClientTimeout(total=settings.request_timeout)},
        ))
        if not await w3.is_connected():
            raise InitializationError(f"ledger node not reachable at {settings.rpc_url}")

        if settings.signer_address:
            signer = AsyncWeb3.to_checksum_address(settings.signer_address)
        else:
            # Igual que provider.getSigner(): primera cuenta gestionada por el nodo
            accounts = await w3.eth.accounts
            if not accounts:
                raise InitializationError("node exposes no unlocked accounts and SIGNER_ADDRESS is not set")
            signer = AsyncWeb3.to_checksum_address(accounts[0])

        exchange_address = AsyncWeb3.to_checksum_address(settings.exchange_address)
        token_address = AsyncWeb3.to_checksum_address(settings.token_address)
        for name, address in (("exchange", exchange_address), ("token", token_address)):
            code = await w3.eth.get_code(address)
            if not code:
                raise InitializationError(f"no contract deployed at {name} address {address}")

        context = LedgerContext(
            w3=w3,
            signer=signer,
            exchange_address=exchange_address,
            token_address=token_address,
            exchange=w3.eth.contract(address=exchange_address, abi=EXCHANGE_ABI),
            token=w3.eth.contract(address=token_address, abi=ERC20_ABI),
            receipt_timeout=settings.receipt_timeout,
        )
    except InitializationError as e:
        logger.critical(f"💀 [LEDGER] Inicialización fallida: {e.reason}")
        raise
    except Exception as e:
        logger.critical(f"💀 [LEDGER] Inicialización fallida: {e}")
        raise InitializationError(f"could not bind ledger: {e}") from e

    logger.success(f"✅ [LEDGER] Conectado. Signer {signer} | Pool {exchange_address} | Token {token_address}")
    return context
