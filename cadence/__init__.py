"""Cadence: recurring schedule engine."""
