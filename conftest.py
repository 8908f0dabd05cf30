from unittest.mock import AsyncMock

import pytest

from models import PendingTransaction, TransactionReceipt

OWNER = "0x1111111111111111111111111111111111111111"
EXCHANGE = "0x2222222222222222222222222222222222222222"
TOKEN = "0x3333333333333333333333333333333333333333"


class FakeLedger:
    """
    Ledger en memoria con el mismo interfaz que LedgerContext.
    `calls` guarda el orden exacto de las interacciones para verificar la secuencia.
    """
    exchange_address = EXCHANGE
    token_address = TOKEN

    def __init__(self, allowance=0):
        self.signer = OWNER
        self.allowance = allowance
        self.reserve = 0
        self.native_balance = 0
        self.calls = []
        # label -> excepción a lanzar al esperar la confirmación
        self.confirm_failures = {}

        self.get_signer_address = AsyncMock(return_value=OWNER)
        self.get_allowance = AsyncMock(side_effect=self._get_allowance)
        self.submit_approval = AsyncMock(side_effect=self._submit_approval)
        self.submit_add_liquidity = AsyncMock(side_effect=self._submit_add_liquidity)
        self.submit_token_to_eth_swap = AsyncMock(side_effect=self._submit_swap)
        self.wait_for_confirmation = AsyncMock(side_effect=self._wait)
        self.get_reserve = AsyncMock(side_effect=self._get_reserve)
        self.get_native_balance = AsyncMock(side_effect=self._get_native_balance)
        self.close = AsyncMock()

    async def _get_allowance(self, owner, spender):
        self.calls.append(("allowance", owner, spender))
        return self.allowance

    async def _submit_approval(self, spender, amount):
        self.calls.append(("approve", spender, amount))
        self._approved = amount
        return PendingTransaction(tx_hash="0xapprove", label="approve")

    async def _submit_add_liquidity(self, token_amount, value):
        self.calls.append(("addLiquidity", token_amount, value))
        return PendingTransaction(tx_hash="0xadd", label="addLiquidity")

    async def _submit_swap(self, tokens_to_swap, min_eth_to_receive):
        self.calls.append(("tokenToEthSwap", tokens_to_swap, min_eth_to_receive))
        return PendingTransaction(tx_hash="0xswap", label="tokenToEthSwap")

    async def _wait(self, pending):
        self.calls.append(("wait", pending.label))
        error = self.confirm_failures.get(pending.label)
        if error is not None:
            raise error
        if pending.label == "approve":
            self.allowance = self._approved
        return TransactionReceipt(tx_hash=pending.tx_hash, block_number=1, status=1)

    async def _get_reserve(self):
        self.calls.append(("getReserve",))
        return self.reserve

    async def _get_native_balance(self, address):
        self.calls.append(("getBalance", address))
        return self.native_balance

    def labels(self):
        return [call[0] for call in self.calls]


@pytest.fixture
def fake_ledger():
    return FakeLedger()
