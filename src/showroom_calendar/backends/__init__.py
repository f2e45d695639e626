"""Event store backends."""
