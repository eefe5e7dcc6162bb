"""Talevault: full-fidelity backup, restore and Drive reconciliation for a reader library."""

__version__ = "0.1.0"
