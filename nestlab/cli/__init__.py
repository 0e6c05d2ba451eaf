"""Command line interface for NestLab."""
