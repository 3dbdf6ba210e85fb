"""Facts emitted by the engine for other subsystems.

Delivery (e-mail, feedback requests, billing triggers) belongs to the
caller; the engine only returns these values.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class VisitCompleted:
    contract_id: Optional[uuid.UUID]
    visit_index: int
    completed_date: datetime


@dataclass(frozen=True)
class ContractExpired:
    contract_id: Optional[uuid.UUID]


@dataclass(frozen=True)
class ContractRenewed:
    source_id: uuid.UUID
    new_contract_id: uuid.UUID
