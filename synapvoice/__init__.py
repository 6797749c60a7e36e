"""Voice-gated command controller for the SynapSense household sensing app."""

__version__ = "1.0.0"
