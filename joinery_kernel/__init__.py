"""
Joinery Job Kernel

Core of the job lifecycle and reconciliation engine for custom window/door
orders and maintenance service calls:
- Exhaustive status-to-stage flows
- Immutable job snapshots
- Typed errors with machine-readable codes
- Structured JSON logging
"""

__version__ = "0.1.0"
