"""Process execution, cancellation and temp-file handling."""
