"""Tap-to-earn mining sessions with proportional SOL reward distribution."""

__version__ = "1.0.0"
