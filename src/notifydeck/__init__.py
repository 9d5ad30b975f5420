"""NotifyDeck: capture macOS notifications before they disappear."""

__version__ = "0.4.0"
