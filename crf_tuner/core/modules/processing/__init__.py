"""Encoding and sample assembly."""
