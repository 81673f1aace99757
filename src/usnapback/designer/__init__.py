"""Snapback primer design engine."""
