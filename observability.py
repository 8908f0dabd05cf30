import sys
import sentry_sdk
from loguru import logger
from logtail import LogtailHandler

DEFAULT_LOGTAIL_HOST = "https://in.logs.betterstack.com"


# Helper para conectar Loguru -> Sentry
class SentrySink:
    def write(self, message):
        record = message.record
        level = record["level"].name
        if level in ["ERROR", "CRITICAL"]:
            sentry_sdk.capture_message(record["message"], level=level.lower())


def setup_observability(settings):
    """
    Configura el pipeline de logs.
    Consola SIEMPRE en stderr: stdout es el canal del transporte stdio de MCP.
    Better Stack (Logtail) y Sentry solo si hay credenciales.
    """
    # 1. Limpiar handlers por defecto para evitar duplicados
    logger.remove()

    # 2. Handler de Consola
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level> | {extra}",
        level=settings.log_level,
    )

    # 3. Handler de Better Stack (La Nube)
    if settings.logtail_token:
        try:
            handler = LogtailHandler(
                source_token=settings.logtail_token,
                host=settings.logtail_host or DEFAULT_LOGTAIL_HOST,
            )
            logger.add(
                handler,
                format="{message}",
                level="INFO",
                backtrace=True,
                diagnose=False,  # no volcar variables (direcciones, importes) a la nube
                serialize=False,
            )
            logger.info("✅ Better Stack pipe conectado")
        except Exception as e:
            logger.error(f"❌ Error conectando a Better Stack: {e}")
    else:
        logger.warning("⚠️ LOGTAIL_TOKEN no encontrado. Los logs no se enviarán a Better Stack.")

    # 4. Errores -> Sentry
    if settings.sentry_dsn:
        sentry_sdk.init(dsn=settings.sentry_dsn, traces_sample_rate=0.0)
        logger.add(SentrySink(), level="ERROR")
        logger.info("✅ Sentry conectado")

    return logger
