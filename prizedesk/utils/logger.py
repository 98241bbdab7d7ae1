import logging
import sys
from datetime import datetime
from pathlib import Path

from prizedesk.config import Config

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Loggers that move money also write to the daily ledger file
LEDGER_LOGGERS = (
    'prizedesk.operations.settlement_operations',
    'prizedesk.operations.distribution_operations',
)


def _daily_file_handler(prefix: str, level: int, formatter: logging.Formatter) -> logging.FileHandler:
    log_dir = Path(Config.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(
        log_dir / f'{prefix}_{datetime.now():%Y%m%d}.log',
        encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logger(name: str) -> logging.Logger:
    """
    Module logger writing to stdout and the daily prizedesk log.

    Settlement and distribution loggers additionally get a ledger log at
    INFO so every credit can be traced without the debug noise.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level = logging.DEBUG if Config.DEBUG else logging.INFO
    logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(formatter)
    logger.addHandler(console)

    logger.addHandler(_daily_file_handler('prizedesk', logging.DEBUG, formatter))
    if name in LEDGER_LOGGERS:
        logger.addHandler(_daily_file_handler('ledger', logging.INFO, formatter))

    return logger
