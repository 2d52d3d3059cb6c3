"""Command line interface for digitflow."""
