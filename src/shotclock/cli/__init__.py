"""Command-line interface for Shotclock."""
