from loguru import logger

from errors import PoolError, AuthorizationError, ConfirmationTimeout
from models import TransactionReceipt, WorkflowStage


class AllowanceGuard:
    """
    Garantiza que el spender (el pool) puede mover `required_amount` del owner
    ANTES de que el workflow envíe la operación principal.

    - allowance >= required: no escribe nada en el ledger (fast path).
    - allowance < required: approve por EXACTAMENTE required (ni ilimitado, ni el delta)
      y espera su confirmación. Nunca devuelve el control con un approve pendiente.
    """

    def __init__(self, ledger):
        self.ledger = ledger

    async def ensure_allowance(self, owner, spender, required_amount, run=None):
        """Devuelve el receipt del approve, o None si no hizo falta. Lanza AuthorizationError."""
        # Siempre se relee: nunca se cachea el allowance entre llamadas
        current = await self.ledger.get_allowance(owner, spender)

        # Comparación entera exacta. required == 0 pasa por aquí igual (sin atajos)
        if current >= required_amount:
            logger.info(f"✅ [ALLOWANCE] Suficiente ({current} >= {required_amount}). Sin approve.")
            return None

        if run is not None:
            run.advance(WorkflowStage.NEEDS_APPROVAL)
        logger.info(f"🔐 [ALLOWANCE] Insuficiente ({current} < {required_amount}). Solicitando approve...")

        try:
            pending = await self.ledger.submit_approval(spender, required_amount)
        except PoolError as e:
            raise AuthorizationError(f"approval failed: {e.reason}") from e

        try:
            return await self.ledger.wait_for_confirmation(pending)
        except ConfirmationTimeout as e:
            return await self._recheck_after_timeout(owner, spender, required_amount, pending, e)
        except PoolError as e:
            raise AuthorizationError(f"approval failed: {e.reason}", approval_tx=pending.tx_hash) from e

    async def _recheck_after_timeout(self, owner, spender, required_amount, pending, timeout):
        # El approve puede estar minado aunque la espera haya expirado: se relee UNA vez
        logger.warning(f"⏳ [ALLOWANCE] Confirmación de {pending.tx_hash} sin resultado. Releyendo allowance...")
        try:
            current = await self.ledger.get_allowance(owner, spender)
        except PoolError as e:
            raise AuthorizationError(
                f"approval outcome unknown ({pending.tx_hash}): {timeout.reason}; allowance re-check failed: {e.reason}",
                approval_tx=pending.tx_hash,
            ) from e

        if current >= required_amount:
            logger.info(f"✅ [ALLOWANCE] El approve {pending.tx_hash} sí se aplicó ({current}). Continuamos.")
            return TransactionReceipt(tx_hash=pending.tx_hash, block_number=None, status=1)

        raise AuthorizationError(
            f"approval outcome unknown ({pending.tx_hash}): {timeout.reason}",
            approval_tx=pending.tx_hash,
        ) from timeout
