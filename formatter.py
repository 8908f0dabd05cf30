from errors import UNKNOWN_ERROR
from units import DEFAULT_DECIMALS, format_units

TITLES = {
    "addLiquidity": "Add liquidity",
    "tokenToEthSwap": "Token to ETH swap",
    "poolState": "Liquidity state query",
}


def format_failure(operation, reason, approval_tx=None, primary_tx=None):
    text = f"{TITLES.get(operation, operation)} failed: {reason or UNKNOWN_ERROR}"
    # Hashes ya enviados: el caller debe poder seguirlos aunque el workflow haya fallado
    if approval_tx:
        text += f"\nApproval transaction: {approval_tx}"
    if primary_tx:
        text += f"\nSubmitted transaction: {primary_tx}"
    return text


def format_pool_state(state, token_decimals=DEFAULT_DECIMALS, native_decimals=DEFAULT_DECIMALS):
    return (
        "Current pool state:\n"
        f"Token reserve: {format_units(state.token_reserve, token_decimals)}\n"
        f"ETH balance: {format_units(state.base_balance, native_decimals)}"
    )


def format_outcome(outcome, token_decimals=DEFAULT_DECIMALS, native_decimals=DEFAULT_DECIMALS):
    """
    WorkflowOutcome -> texto único para el caller.
    Éxito: hash de la transacción + importes tal cual los escribió el caller (no los escalados).
    Fallo: el motivo más específico disponible, o "unknown error".
    """
    if not outcome.ok:
        return format_failure(outcome.operation, outcome.reason, outcome.approval_tx, outcome.primary_tx)

    if outcome.pool_state is not None:
        return format_pool_state(outcome.pool_state, token_decimals, native_decimals)

    text = f"{TITLES[outcome.operation]} succeeded! Transaction hash: {outcome.transaction_id}"
    if outcome.summary:
        text += f"\n{outcome.summary}"
    if outcome.approval_tx:
        text += f"\nApproval transaction: {outcome.approval_tx}"
    return text
