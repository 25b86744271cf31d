import logging
import sys
from typing import Iterable, Optional

from .config import LOG_LEVEL, LOG_NAMESPACES

# Loggers whose level follows LOG_LEVEL=DEBUG; everything else stays at the "erp" level.
STOCK_LOGGERS = ("erp.features.inventory", "erp.common.compat")


class NamespaceFilter(logging.Filter):
    """Lets through records from the given logger namespaces and their children.

    "erp.features.sales" matches "erp.features.sales.workflows" but not
    "erp.features.salesforce". No namespaces means no filtering.
    """

    def __init__(self, allowed_namespaces: Optional[Iterable[str]] = None):
        super().__init__()
        self.allowed_namespaces = tuple(allowed_namespaces or ())

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.allowed_namespaces:
            return True
        return any(record.name == ns or record.name.startswith(f"{ns}.") for ns in self.allowed_namespaces)


erp_logger = logging.getLogger("erp")

console_handler = logging.StreamHandler(sys.stdout)
console_handler.setFormatter(
    logging.Formatter(
        fmt="%(asctime)s %(levelname)-7s [%(name)s:%(lineno)d] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
)


def configure_logging(level: str = LOG_LEVEL, namespaces: Iterable[str] = LOG_NAMESPACES) -> logging.Logger:
    """
    Installs the console handler on the "erp" logger.

    Safe to call more than once: the handler is added a single time and its
    namespace filter is replaced.

    Args:
        level: Level name for the "erp" logger.
        namespaces: Logger prefixes to show on the console; empty shows all.

    Returns:
        The "erp" logger.
    """
    erp_logger.setLevel(level)
    for old in [f for f in console_handler.filters if isinstance(f, NamespaceFilter)]:
        console_handler.removeFilter(old)
    namespaces = list(namespaces)
    if namespaces:
        console_handler.addFilter(NamespaceFilter(namespaces))
    if console_handler not in erp_logger.handlers:
        erp_logger.addHandler(console_handler)

    for name in STOCK_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if level == "DEBUG" else logging.NOTSET)
    return erp_logger


configure_logging()

# To see the SQL Tortoise emits:
# logging.getLogger("tortoise.db_client").setLevel(logging.DEBUG)
