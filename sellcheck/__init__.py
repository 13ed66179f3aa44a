"""SellCheck - sell-through rate and BUY/PASS verdicts for resale sourcing."""

__version__ = "0.2.0"
