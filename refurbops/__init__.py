"""Refurb Ops: device refurbishment workflow, TAT monitoring and alerting."""

__version__ = "1.0.0"
