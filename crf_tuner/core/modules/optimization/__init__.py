"""Scene selection, CRF search and optimized encodes."""
