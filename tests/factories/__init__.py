"""
Test factories for generating realistic test data.

Uses factory_boy for declarative test data generation.
"""

from .contract import (
    DEFAULT_CUSTOMER_ID,
    OTHER_CUSTOMER_ID,
    ContractFactory,
    ContractPayloadFactory,
)

__all__ = [
    "DEFAULT_CUSTOMER_ID",
    "OTHER_CUSTOMER_ID",
    "ContractFactory",
    "ContractPayloadFactory",
]
