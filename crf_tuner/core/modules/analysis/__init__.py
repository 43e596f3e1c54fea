"""Probing, scene detection and quality measurement."""
