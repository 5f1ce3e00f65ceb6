"""SQLAlchemy ORM models."""

from renocheck.models.base import Base
from renocheck.models.property import Property
from renocheck.models.inspection import Inspection
from renocheck.models.zone import Zone
from renocheck.models.element import Element

__all__ = ["Base", "Property", "Inspection", "Zone", "Element"]
