"""
CLI runner module.

Provides commands:
- process: Extract ledger rows from one document
- history / validate: Review extraction history
- prompt: Show or version an office prompt
- worker / monitor: Fine-tuning queue and job polling
"""

from .main import create_cli, main

__all__ = [
    "create_cli",
    "main",
]
