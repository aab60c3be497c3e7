"""quotegate: market data gateway with crumb-session handling and per-channel streaming."""

__version__ = "0.1.0"
