"""EliteWealth investor relay: real-time chat between investors and admins plus payment-proof uploads."""

__version__ = "1.0.0"
