"""Command-line interface for leitnercore."""
