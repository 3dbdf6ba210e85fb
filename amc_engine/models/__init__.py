from amc_engine.models.amc_contract import AMCContract

__all__ = [
    "AMCContract",
]
