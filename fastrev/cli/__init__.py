"""CLI for curriculum authors and operators."""
