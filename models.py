from enum import Enum
from typing import Optional, Literal

from pydantic import BaseModel

from units import DEFAULT_DECIMALS, parse_units


class Amount(BaseModel):
    """
    Cantidad en unidad mínima (`raw`) + el texto tal cual lo escribió el caller (`display`).
    Los mensajes de resultado usan `display` para que el caller vea sus propias unidades.
    """
    model_config = {"frozen": True}

    raw: int
    display: str

    @classmethod
    def parse(cls, text, decimals=DEFAULT_DECIMALS):
        return cls(raw=parse_units(text, decimals), display=text.strip())


class PendingTransaction(BaseModel):
    """Handle de una escritura enviada al ledger y todavía no confirmada."""
    tx_hash: str
    label: str  # "approve", "addLiquidity", "tokenToEthSwap"


class TransactionReceipt(BaseModel):
    tx_hash: str
    block_number: Optional[int] = None
    status: int = 1


class PoolState(BaseModel):
    # Unidades mínimas (enteros de precisión arbitraria), nunca floats
    token_reserve: int
    base_balance: int


class WorkflowStage(str, Enum):
    CHECKING = "CHECKING"
    NEEDS_APPROVAL = "NEEDS_APPROVAL"
    APPROVED = "APPROVED"
    SUBMITTED = "SUBMITTED"
    SETTLED = "SETTLED"
    FAILED = "FAILED"


class WorkflowOutcome(BaseModel):
    """
    Resultado único de cada invocación. Se crea fresco por petición y no se muta tras formatearse.
    `failed_at` indica en qué etapa se cortó (p.ej. APPROVED: approval liquidado, primary sin confirmar).
    `primary_tx` es el hash de la operación principal si llegó a enviarse, confirmada o no.
    """
    model_config = {"frozen": True}

    status: Literal["SUCCESS", "FAILURE"]
    operation: Literal["addLiquidity", "tokenToEthSwap", "poolState"]
    summary: Optional[str] = None
    transaction_id: Optional[str] = None
    reason: Optional[str] = None
    error_kind: Optional[str] = None
    stage: WorkflowStage = WorkflowStage.CHECKING
    failed_at: Optional[WorkflowStage] = None
    approval_tx: Optional[str] = None
    primary_tx: Optional[str] = None
    pool_state: Optional[PoolState] = None

    @property
    def ok(self):
        return self.status == "SUCCESS"

    @classmethod
    def success(cls, operation, summary=None, transaction_id=None, approval_tx=None, pool_state=None):
        return cls(
            status="SUCCESS", operation=operation, summary=summary,
            transaction_id=transaction_id, primary_tx=transaction_id, stage=WorkflowStage.SETTLED,
            approval_tx=approval_tx, pool_state=pool_state,
        )

    @classmethod
    def failure(cls, operation, error, failed_at=None, approval_tx=None, primary_tx=None):
        return cls(
            status="FAILURE", operation=operation, reason=error.reason,
            error_kind=error.kind, stage=WorkflowStage.FAILED,
            failed_at=failed_at, approval_tx=approval_tx, primary_tx=primary_tx,
        )
