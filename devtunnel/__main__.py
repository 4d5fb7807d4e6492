#!/usr/bin/env python3
"""
Entry point for running devtunnel as a module.

This allows the package to be executed with:
    python -m devtunnel
"""
from devtunnel.cli import cli

if __name__ == "__main__":
    cli()
