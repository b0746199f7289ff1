"""
Enumerations shared by the storage layer and the services.
"""

import enum


class ElectionType(str, enum.Enum):
    PRESIDENTIAL = "PRESIDENTIAL"
    DISTRICT_COUNCILOR = "DISTRICT_COUNCILOR"
    AT_LARGE_COUNCILOR = "AT_LARGE_COUNCILOR"


class ElectionStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    REGISTRATION_OPEN = "REGISTRATION_OPEN"
    VOTING_OPEN = "VOTING_OPEN"
    VOTING_CLOSED = "VOTING_CLOSED"
    TALLIED = "TALLIED"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)

    def next_status(self):
        """The only status this one may move to, or None at the end."""
        if self.rank + 1 < len(_STATUS_ORDER):
            return _STATUS_ORDER[self.rank + 1]
        return None

    @property
    def is_locked(self) -> bool:
        """Name, type, root, candidates and voters are frozen from VOTING_OPEN on."""
        return self.rank >= ElectionStatus.VOTING_OPEN.rank

    @property
    def results_available(self) -> bool:
        return self in (ElectionStatus.VOTING_CLOSED, ElectionStatus.TALLIED)


_STATUS_ORDER = [
    ElectionStatus.DRAFT,
    ElectionStatus.REGISTRATION_OPEN,
    ElectionStatus.VOTING_OPEN,
    ElectionStatus.VOTING_CLOSED,
    ElectionStatus.TALLIED,
]
