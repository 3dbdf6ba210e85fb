"""AMC contract model with its embedded visit schedule."""

from sqlalchemy import Column, String, DateTime, Text, Integer, Date, Float, JSON, Numeric
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
import uuid

from amc_engine.database import Base


class AMCContract(Base):
    """Annual maintenance contract for a DG set / engine."""

    __tablename__ = "amc_contracts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)

    # Contract identification (AMC-<year>-<seq>)
    contract_number = Column(String(50), unique=True, nullable=False, index=True)
    contract_type = Column(String(10), nullable=False, default="AMC")  # AMC, CAMC

    # Customer (resolved by the customer directory, not a local FK)
    customer_id = Column(String(64), nullable=False, index=True)
    customer_address = Column(Text, nullable=True)
    contact_person_name = Column(String(255), nullable=True)
    contact_number = Column(String(50), nullable=True)

    # Engine / DG set
    engine_serial_number = Column(String(100), nullable=False, index=True)
    engine_model = Column(String(100), nullable=True)
    kva = Column(Float, nullable=True)
    dg_make = Column(String(100), nullable=True)
    date_of_commissioning = Column(Date, nullable=True)

    # Term
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False, index=True)

    # Plan
    number_of_visits = Column(Integer, nullable=False)
    number_of_oil_services = Column(Integer, nullable=False, default=0)
    contract_value = Column(Numeric(12, 2), nullable=False, default=0)
    terms = Column(Text, nullable=True)

    # Status: draft, pending, active, suspended, expired, cancelled
    status = Column(String(20), nullable=False, default="draft", index=True)

    # Derived from visit_schedule, stored for querying
    completed_visits = Column(Integer, nullable=False, default=0)
    next_visit_date = Column(Date, nullable=True, index=True)

    # Owned visit records, addressed by index
    visit_schedule = Column(JSON, nullable=False, default=list)

    # Renewal chain
    renewed_from_id = Column(UUID(as_uuid=True), nullable=True, index=True)

    # Optimistic concurrency token, bumped on every write
    version = Column(Integer, nullable=False, default=1)

    # Audit
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<AMCContract {self.contract_number} v{self.version} - {self.status}>"
