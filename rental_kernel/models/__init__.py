"""ORM models for rental contracts, obligations and financial settings."""

from rental_kernel.models.contract import CONTRACT_TERM_FIELDS, RentalContractModel
from rental_kernel.models.financial_config import FinancialConfigModel
from rental_kernel.models.obligation import RentObligationModel


__all__ = [
    "CONTRACT_TERM_FIELDS",
    "FinancialConfigModel",
    "RentObligationModel",
    "RentalContractModel",
]
