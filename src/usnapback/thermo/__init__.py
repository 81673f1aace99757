"""Nearest-neighbor thermodynamics and melting temperature calculations."""
