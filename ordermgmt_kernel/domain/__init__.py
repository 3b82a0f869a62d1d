"""Pure kernel domain helpers (no I/O)."""
