"""Finora - financial data aggregation and AI analysis API."""

__version__ = "1.0.0"
