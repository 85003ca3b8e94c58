"""snapcarry — mirror local snap packages onto a portable offline store."""

__version__ = "0.3.0"
