"""Core search, sampling and encode modules."""
