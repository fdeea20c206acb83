"""
Rental Kernel

Shared core of the rent-payment financial engine:
- Typed exceptions and structured logging
- Injected clock and Decimal money helpers
- Contract and obligation value objects and ORM models
- Contract onboarding and payment recording
"""

__version__ = "0.1.0"
