"""Integration tests: end-to-end CLI and scenario workflows."""
