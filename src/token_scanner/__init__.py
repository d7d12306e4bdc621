"""Token Scanner - launch, alert and portfolio tracking for bonding-curve tokens."""

__version__ = "0.1.0"
