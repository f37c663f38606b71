from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class Manifest(BaseModel):
    """Pointer to the current dataset generation in the object store."""

    updated_at: datetime
    master_object: str
    reference_object: str
