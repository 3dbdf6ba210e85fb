"""
Shared Pydantic types for schema validation.

UUIDStr: Accepts both str and uuid.UUID objects, coercing UUID to str.
Contract ids come out of the store as uuid.UUID, but Pydantic v2 does
not auto-coerce UUID to str.
"""

from typing import Annotated
from pydantic import BeforeValidator

UUIDStr = Annotated[str, BeforeValidator(lambda v: str(v) if not isinstance(v, str) else v)]
