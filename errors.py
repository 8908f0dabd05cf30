UNKNOWN_ERROR = "unknown error"


class PoolError(Exception):
    """
    Base de todos los fallos por petición.
    Cada workflow los captura en su frontera y los convierte en texto (nunca llegan al caller).
    """
    kind = "POOL_ERROR"

    def __init__(self, reason=None):
        self.reason = (str(reason).strip() if reason is not None else "") or UNKNOWN_ERROR
        super().__init__(self.reason)


class ParseError(PoolError):
    """Malformed decimal-string amount. Raised before any ledger call."""
    kind = "PARSE_ERROR"


class AuthorizationError(PoolError):
    """The approval could not be submitted or confirmed; the primary call is skipped."""
    kind = "AUTHORIZATION_ERROR"

    def __init__(self, reason=None, approval_tx=None):
        super().__init__(reason)
        self.approval_tx = approval_tx


class LedgerRejection(PoolError):
    """Revert or node-side rejection (insufficient funds, pool constraint, slippage floor)."""
    kind = "LEDGER_REJECTION"


class ConnectivityError(PoolError):
    kind = "CONNECTIVITY_ERROR"


class ConfirmationTimeout(ConnectivityError):
    """The receipt wait expired: the transaction may or may not have been mined."""
    kind = "CONFIRMATION_TIMEOUT"

    def __init__(self, reason=None, tx_hash=None):
        super().__init__(reason)
        self.tx_hash = tx_hash


class InitializationError(PoolError):
    """Provider/signer/contract binding failed at startup. Fatal, never per-request."""
    kind = "INITIALIZATION_ERROR"
