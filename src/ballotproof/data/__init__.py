from .database import ElectionDatabase
from .models import ElectionStatus, ElectionType

__all__ = ["ElectionDatabase", "ElectionStatus", "ElectionType"]
