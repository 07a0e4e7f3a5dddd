from loguru import logger
import sys
import logging
from typing import Dict, Any
from coursefs.config import get_config

app_config = get_config()

class InterceptHandler(logging.Handler):
    """
    Intercept standard logging messages and redirect them to loguru

    This allows us to capture logs from libraries like uvicorn and psycopg and route them through loguru
    """
    def emit(self, record):
        # Get corresponding Loguru level if it exists
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where the logged message originated
        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )

def setup_logging(config: Dict[str, Any] = None) -> None:
    """
    Configure loguru for the CLI and the API server.

    Args:
        config: `Config.model_dump()` or any mapping with `log_level` and
            `log_file`; missing keys fall back to the environment settings
    """
    settings = {**app_config.model_dump(include={"log_level", "log_file"}), **(config or {})}
    level = settings["log_level"]

    # Remove default handler
    logger.remove()

    logger.add(
        sys.stderr,
        level=level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        colorize=True,
    )

    if settings.get("log_file"):
        logger.add(
            settings["log_file"],
            rotation="10 MB",
            retention="1 week",
            compression="zip",
            level=level,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        )

    # Route stdlib logging (uvicorn, psycopg pool) through loguru
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for logger_name in ["uvicorn", "uvicorn.error", "uvicorn.access", "fastapi", "psycopg", "psycopg.pool"]:
        logging_logger = logging.getLogger(logger_name)
        logging_logger.handlers = [InterceptHandler()]
        logging_logger.propagate = False

    logger.info("Logging configured with level: {}", level)

# Export logger for use in other modules
__all__ = ["logger", "setup_logging"]
