"""Core settings and observability."""
