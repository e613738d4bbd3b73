"""Diagnostics side channel for faults raised inside rules."""

from .fault_collector import FaultCollector, RuleFault

__all__ = [
    "FaultCollector",
    "RuleFault",
]
