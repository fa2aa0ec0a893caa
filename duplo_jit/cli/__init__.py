"""Command-line interface for duplo-jit."""
