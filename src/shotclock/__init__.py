"""Shotclock - how long since your last commit, counting only active work."""

__version__ = "0.1.0"
