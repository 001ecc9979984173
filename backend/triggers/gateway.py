"""Trigger Gateway — turns inbound events into workflow runs.

Every accepted event starts exactly one run of the designated workflow
and returns at once; the caller only learns whether the run could be
started, never how it ended. Run outcomes are visible through the run
history and logs.
"""

import logging
from typing import Any, Optional

from core.exceptions import RunSchedulingFailure
from triggers.base import GatewayResponse, TriggerEvent
from workflow.engine import ExecutionEngine
from workflow.nodes import WorkflowDefinition

logger = logging.getLogger(__name__)

ACCEPTED_MESSAGE = "Workflow run started"
REJECTED_MESSAGE = "There was an error"


class TriggerGateway:
    """Synchronous request/acknowledge boundary in front of the engine."""

    def __init__(
        self,
        engine: Optional[ExecutionEngine],
        definition: WorkflowDefinition,
    ):
        self._engine = engine
        self._definition = definition

    @property
    def definition(self) -> WorkflowDefinition:
        return self._definition

    async def on_event(self, event: Any) -> GatewayResponse:
        """Start a run for ``event``; accept or reject without waiting for it."""
        if not isinstance(event, TriggerEvent):
            event = TriggerEvent.from_dict(event)

        if self._engine is None:
            return self._reject(event, "engine unavailable")

        try:
            context = self._engine.start_run(self._definition, run_input=event.payload)
        except RunSchedulingFailure as e:
            return self._reject(event, e.reason)
        except Exception as e:
            logger.error(f"Trigger {event.trigger_id} failed to schedule: {e}", exc_info=True)
            return self._reject(event, str(e))

        logger.info(
            f"Trigger {event.trigger_id} ({event.source}) -> run {context.run_id} "
            f"of {self._definition.name}"
        )
        return GatewayResponse(
            accepted=True,
            status_code=200,
            message=ACCEPTED_MESSAGE,
            run_id=context.run_id,
        )

    def _reject(self, event: TriggerEvent, reason: str) -> GatewayResponse:
        logger.error(f"Trigger {event.trigger_id} rejected: {reason}")
        return GatewayResponse(
            accepted=False,
            status_code=500,
            message=REJECTED_MESSAGE,
            error_message=reason,
        )
