"""tagwatch — pull-based build and deployment runners."""

__version__ = "0.1.0"
