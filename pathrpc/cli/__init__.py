"""Command line interface for pathrpc."""
