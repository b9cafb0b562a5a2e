"""DeskHooks - webhook delivery for the customer-service platform."""

__version__ = "0.1.0"
