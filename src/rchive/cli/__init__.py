"""Command line interface for rchive."""

from .dispatcher import create_parser, main

__all__ = ["create_parser", "main"]
