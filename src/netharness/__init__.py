"""Build and test orchestration for the networking library backends."""

__version__ = "0.1.0"
