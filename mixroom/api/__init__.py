"""HTTP API for Mixroom."""
