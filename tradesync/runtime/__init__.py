from .logging import setup_logger
from .loop import (
    StateSnapshotWriter,
    bootstrap_dependencies,
    restore_state,
    run_reconciliation,
    supervise,
)
from .services import TradingServices, build_trading_services
from .settings import AppSettings

__all__ = [
    "AppSettings",
    "StateSnapshotWriter",
    "TradingServices",
    "bootstrap_dependencies",
    "build_trading_services",
    "restore_state",
    "run_reconciliation",
    "setup_logger",
    "supervise",
]
