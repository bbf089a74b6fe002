"""HTTP API for the transfer engine."""
