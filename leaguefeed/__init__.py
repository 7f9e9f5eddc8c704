"""leaguefeed — cached, rate-limit-aware daily closing prices for a stock league."""

__version__ = "0.3.0"
