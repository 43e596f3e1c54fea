"""Shared helpers for crf_tuner (logging, progress bars, formatting, rounding)."""
