"""Trip booking service: room inventory, cart holds and waitlist promotion."""

__version__ = "1.0.0"
