"""Trust mesh test suite."""
