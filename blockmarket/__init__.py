"""Block marketplace purchase, license and payout core."""

__version__ = "0.1.0"
