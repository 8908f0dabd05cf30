from loguru import logger

from allowance import AllowanceGuard
from errors import PoolError, AuthorizationError
from models import PoolState, WorkflowOutcome, WorkflowStage


class WorkflowRun:
    """
    Micro máquina de estados de un workflow approve-then-act:
    CHECKING -> [NEEDS_APPROVAL ->] APPROVED -> SUBMITTED -> SETTLED
    Si algo falla, `stage` queda en la última etapa alcanzada (inspeccionable).
    """
    TRANSITIONS = {
        WorkflowStage.CHECKING: {WorkflowStage.NEEDS_APPROVAL, WorkflowStage.APPROVED},
        WorkflowStage.NEEDS_APPROVAL: {WorkflowStage.APPROVED},
        WorkflowStage.APPROVED: {WorkflowStage.SUBMITTED},
        WorkflowStage.SUBMITTED: {WorkflowStage.SETTLED},
    }

    def __init__(self, operation):
        self.operation = operation
        self.stage = WorkflowStage.CHECKING
        self.approval_tx = None
        self.primary_tx = None

    def advance(self, stage):
        if stage not in self.TRANSITIONS.get(self.stage, set()):
            raise RuntimeError(f"{self.operation}: illegal transition {self.stage.value} -> {stage.value}")
        logger.debug(f"🔁 [{self.operation}] {self.stage.value} -> {stage.value}")
        self.stage = stage


class PoolEngine:
    """
    Orquestador de los workflows del pool (addLiquidity, tokenToEthSwap) y lector de reservas.

    Precondición: como mucho UNA invocación mutante en vuelo por signer. El engine no
    lo serializa; lo hace la capa de dispatch (server.py) con `AppContext.signer_lock`.
    """

    def __init__(self, ledger):
        self.ledger = ledger
        self.allowance_guard = AllowanceGuard(ledger)

    async def run_liquidity_provision(self, token_amount, base_amount):
        """Deposita `token_amount` del token + `base_amount` nativo (value del mismo call)."""
        return await self._run(
            "addLiquidity",
            spend=token_amount,
            submit=lambda: self.ledger.submit_add_liquidity(token_amount.raw, base_amount.raw),
            summary=f"Added liquidity: {token_amount.display} Token and {base_amount.display} ETH",
        )

    async def run_swap(self, token_amount_in, min_base_amount_out):
        # min_base_amount_out se pasa tal cual: el slippage floor lo hace cumplir el contrato
        return await self._run(
            "tokenToEthSwap",
            spend=token_amount_in,
            submit=lambda: self.ledger.submit_token_to_eth_swap(token_amount_in.raw, min_base_amount_out.raw),
            summary=f"Swapped {token_amount_in.display} Token for ETH (minimum {min_base_amount_out.display} ETH)",
        )

    async def _run(self, operation, spend, submit, summary):
        run = WorkflowRun(operation)
        logger.info(f"🚀 [{operation}] Iniciando workflow (spend={spend.display})")
        try:
            owner = await self.ledger.get_signer_address()

            approval = await self.allowance_guard.ensure_allowance(
                owner, self.ledger.exchange_address, spend.raw, run=run
            )
            if approval is not None:
                run.approval_tx = approval.tx_hash
            run.advance(WorkflowStage.APPROVED)

            pending = await submit()
            run.primary_tx = pending.tx_hash
            run.advance(WorkflowStage.SUBMITTED)

            receipt = await self.ledger.wait_for_confirmation(pending)
            run.advance(WorkflowStage.SETTLED)
        except AuthorizationError as e:
            if e.approval_tx:
                run.approval_tx = e.approval_tx
            logger.error(f"🔐 [{operation}] Approve fallido, operación principal NO enviada: {e.reason}")
            return WorkflowOutcome.failure(
                operation, e, failed_at=run.stage,
                approval_tx=run.approval_tx, primary_tx=run.primary_tx,
            )
        except PoolError as e:
            logger.error(f"❌ [{operation}] Fallo en {run.stage.value} ({e.kind}): {e.reason}")
            return WorkflowOutcome.failure(
                operation, e, failed_at=run.stage,
                approval_tx=run.approval_tx, primary_tx=run.primary_tx,
            )
        except Exception as e:
            # Frontera del workflow: nada se escapa al caller
            logger.exception(f"💥 [{operation}] Error inesperado en {run.stage.value}: {e}")
            return WorkflowOutcome.failure(
                operation, PoolError(str(e)), failed_at=run.stage,
                approval_tx=run.approval_tx, primary_tx=run.primary_tx,
            )

        logger.success(f"✅ [{operation}] Confirmado: {receipt.tx_hash}")
        return WorkflowOutcome.success(
            operation, summary=summary, transaction_id=receipt.tx_hash, approval_tx=run.approval_tx
        )

    async def read_pool_state(self):
        """Snapshot de solo lectura: reserva de token registrada + balance nativo del contrato."""
        try:
            token_reserve = await self.ledger.get_reserve()
            base_balance = await self.ledger.get_native_balance(self.ledger.exchange_address)
        except PoolError as e:
            logger.error(f"❌ [POOL] Lectura de reservas fallida ({e.kind}): {e.reason}")
            return WorkflowOutcome.failure("poolState", e)
        except Exception as e:
            logger.exception(f"💥 [POOL] Error inesperado leyendo reservas: {e}")
            return WorkflowOutcome.failure("poolState", PoolError(str(e)))

        state = PoolState(token_reserve=token_reserve, base_balance=base_balance)
        logger.info(f"📊 [POOL] reserve={token_reserve} balance={base_balance}")
        return WorkflowOutcome.success("poolState", pool_state=state)
