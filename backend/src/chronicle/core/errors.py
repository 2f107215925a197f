"""Domain exceptions raised by the ledger, projections and combat engine.

API handlers translate these into responses (see ``chronicle.api.main``):

- :class:`ValidationError` -> 400, raised before any transaction is opened.
- :class:`NotFoundError`   -> 404, a referenced row is missing.
- :class:`ReplayFailure`   -> 500, a rebuild aborted; nothing was committed.

None of them is retried automatically.
"""

from __future__ import annotations

from typing import Optional


class ChronicleError(Exception):
    """Base class for every domain error of the package."""


class ValidationError(ChronicleError):
    """Command or event payload is missing required data or is malformed."""


class DiceFormulaError(ValidationError):
    def __init__(self, formula: str) -> None:
        super().__init__(f"Unsupported dice formula: {formula!r}")
        self.formula = formula


class CombatInactiveError(ValidationError):
    def __init__(self, campaign_id: str) -> None:
        super().__init__(f"Combat for campaign {campaign_id} is not active")
        self.campaign_id = campaign_id


class InsufficientResourceError(ValidationError):
    def __init__(self, resource: str, required: int, available: int) -> None:
        super().__init__(
            f"Insufficient {resource}: required {required}, available {available}"
        )
        self.resource = resource
        self.required = required
        self.available = available


class NotFoundError(ChronicleError):
    def __init__(self, entity: str, entity_id: Optional[str]) -> None:
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class ReplayFailure(ChronicleError):
    """A single event failed its projector during a rebuild.

    The rebuild transaction has already been rolled back when this is raised;
    ``event_id`` and ``event_type`` identify the offending ledger row.
    """

    def __init__(self, event_id: str, event_type: str, cause: BaseException) -> None:
        super().__init__(f"Replay failed at event {event_id} ({event_type}): {cause}")
        self.event_id = event_id
        self.event_type = event_type
        self.cause = cause
