"""Cherry-pick propagation bot for GitHub and GitCode."""

__version__ = "0.1.0"
