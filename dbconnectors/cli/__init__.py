"""Command line interface for dbconnectors."""
