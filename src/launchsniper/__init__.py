"""Launch Sniper - autonomous new-token trading agent for Solana."""

__version__ = "0.1.0"
