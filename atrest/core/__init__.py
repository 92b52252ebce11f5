"""Core cryptographic components."""
