"""DeFi position alerts: threshold monitoring, Telegram dispatch and guarded upstream queries."""

__version__ = "0.1.0"
