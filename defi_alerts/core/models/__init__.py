"""SQLAlchemy 2.0 ORM models for the DeFi alerts service.

Re-exports Base and the AlertRecord model.
"""

from .alerts import AlertRecord
from .base import Base

__all__ = ["AlertRecord", "Base"]
