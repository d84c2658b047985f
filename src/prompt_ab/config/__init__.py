from prompt_ab.config.ledger import LedgerConfig, get_ledger_config, ledger_config_from
from prompt_ab.config.settings import Settings, get_settings

__all__ = [
    "LedgerConfig",
    "Settings",
    "get_ledger_config",
    "get_settings",
    "ledger_config_from",
]
