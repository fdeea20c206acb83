"""Services for the rental kernel (write side)."""

from rental_kernel.services.contract_service import ContractSchedule, ContractService

__all__ = [
    "ContractSchedule",
    "ContractService",
]
