"""
peo_portal/errors.py

Error taxonomy for the procurement engine.

- Unavailable:       the persistence layer could not be reached; the operation was rolled back.
- NotFound:          a primary id did not resolve on update/delete.
- ValidationFailure: the request was rejected before any write.

Reads never raise NotFound (they return None) and a missing OPTIONAL reference
(budget_id, pow_id, contract_history_id) is a silent skip, not an error.
"""

from __future__ import annotations


class PortalError(Exception):
    """Base class for errors surfaced to callers."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.__class__.__name__, "message": self.message}


class Unavailable(PortalError):
    status_code = 503


class NotFound(PortalError):
    status_code = 404

    def __init__(self, entity: str, entity_id):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class ValidationFailure(PortalError):
    status_code = 400


class SequenceConflict(Exception):
    """Two writers drew the same POW/BID number; the operation may be retried."""

    def __init__(self, key: str):
        super().__init__(f"number sequence conflict on {key}")
        self.key = key
