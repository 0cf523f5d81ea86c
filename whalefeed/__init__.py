"""whalefeed — real-time whale transfer feed for EVM chains."""

__version__ = "0.1.0"
