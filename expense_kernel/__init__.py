"""
Expense Kernel - shared infrastructure for the vehicle expense engine.

- Structured JSON logging with request-scoped context
- Typed exceptions with machine-readable codes
- Injectable clocks
- SQLAlchemy base classes, engine setup, and host entities (cars, expenses)
"""

__version__ = "0.1.0"
