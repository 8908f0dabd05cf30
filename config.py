import os
import re
from typing import Optional, Literal

from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError, field_validator

from errors import InitializationError
from units import DEFAULT_DECIMALS

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


class Settings(BaseModel):
    rpc_url: str = "http://localhost:8545"
    exchange_address: str
    token_address: str
    signer_address: Optional[str] = None
    token_decimals: int = DEFAULT_DECIMALS
    native_decimals: int = DEFAULT_DECIMALS
    request_timeout: float = 30.0
    receipt_timeout: float = 120.0
    transport: Literal["stdio", "sse", "streamable-http"] = "stdio"
    log_level: str = "INFO"
    logtail_token: Optional[str] = None
    logtail_host: Optional[str] = None
    sentry_dsn: Optional[str] = None

    @field_validator("exchange_address", "token_address", "signer_address")
    @classmethod
    def _check_address(cls, value):
        if value is not None and not _ADDRESS_RE.match(value):
            raise ValueError(f"not a 20-byte hex address: {value!r}")
        return value

    @field_validator("token_decimals", "native_decimals")
    @classmethod
    def _check_decimals(cls, value):
        if not 0 <= value <= 77:
            raise ValueError(f"decimals out of range: {value}")
        return value


def load_settings(env=None):
    """
    Lee la configuración UNA vez al arrancar (.env + entorno).
    Cualquier valor ausente o inválido es fatal: sin contratos no hay herramientas.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    raw = {
        "rpc_url": env.get("LEDGER_RPC_URL", "http://localhost:8545"),
        "exchange_address": env.get("EXCHANGE_ADDRESS"),
        "token_address": env.get("TOKEN_ADDRESS"),
        "signer_address": env.get("SIGNER_ADDRESS") or None,
        "token_decimals": env.get("TOKEN_DECIMALS", DEFAULT_DECIMALS),
        "native_decimals": env.get("NATIVE_DECIMALS", DEFAULT_DECIMALS),
        "request_timeout": env.get("LEDGER_REQUEST_TIMEOUT", 30.0),
        "receipt_timeout": env.get("RECEIPT_TIMEOUT", 120.0),
        "transport": env.get("MCP_TRANSPORT", "stdio"),
        "log_level": env.get("LOG_LEVEL", "INFO"),
        "logtail_token": env.get("LOGTAIL_TOKEN") or None,
        "logtail_host": env.get("LOGTAIL_HOST") or None,
        "sentry_dsn": env.get("SENTRY_DSN") or None,
    }

    missing = [name for name, key in (("EXCHANGE_ADDRESS", "exchange_address"), ("TOKEN_ADDRESS", "token_address")) if not raw[key]]
    if missing:
        raise InitializationError(f"❌ FALTAN VARIABLES: {', '.join(missing)} (revisa tu .env)")

    try:
        return Settings(**raw)
    except ValidationError as e:
        raise InitializationError(f"invalid configuration: {e}") from e
