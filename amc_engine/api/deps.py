"""
FastAPI Dependencies

Provides dependency injection for database sessions, the clock, the
customer and user directories, and the contract store.

Customer and user master data live outside this service. Until a
directory client is wired in, both directories are permissive and every
id resolves; tests override them with closed directories.
"""

from typing import Annotated
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from amc_engine.config import settings
from amc_engine.database import get_db
from amc_engine.services.amc.ports import Clock, CustomerDirectory, StaticDirectory, SystemClock, UserDirectory
from amc_engine.services.contract_store import ContractStore

_system_clock = SystemClock()
_open_directory = StaticDirectory(permissive=True)


def get_clock() -> Clock:
    return _system_clock


def get_customer_directory() -> CustomerDirectory:
    return _open_directory


def get_user_directory() -> UserDirectory:
    return _open_directory


def get_contract_store(
    db: Annotated[AsyncSession, Depends(get_db)],
    clock: Annotated[Clock, Depends(get_clock)],
    customers: Annotated[CustomerDirectory, Depends(get_customer_directory)],
    users: Annotated[UserDirectory, Depends(get_user_directory)],
) -> ContractStore:
    return ContractStore(db, clock, customers, users, number_prefix=settings.CONTRACT_NUMBER_PREFIX)


# Type aliases for dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
ClockDep = Annotated[Clock, Depends(get_clock)]
Store = Annotated[ContractStore, Depends(get_contract_store)]
