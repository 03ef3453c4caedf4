"""Pipeline step engine.

Turns a requested operation into a tracked step and drives it through the
state machine:
- enqueue_step records a queued step and returns its id without I/O
- run_step claims the step (queued -> running), dispatches to the adapter
  family for its kind, and records exactly one of done/failed
- generate_directly is the enqueue + run shortcut for GENERATE

Adapter and precondition failures are recorded on the step, reported to
the notifier, and never retried here.
"""

import logging
import time
import uuid
from enum import Enum
from typing import Any, Iterable, Optional, Union

from canvaspipe.errors import (
    MissingInputAssetError,
    ProviderNotFoundError,
    StepFailedError,
    StepReentryError,
    UnknownStepKindError,
)
from canvaspipe.orchestrator.state import (
    SYNTHESIZED_INSTRUCTIONS,
    can_transition,
    category_for_kind,
    family_for_kind,
)
from canvaspipe.schemas.media import Asset, PipelineStep, StepKind
from canvaspipe.services.notifications import LoggingNotifier, Notifier
from canvaspipe.services.providers.registry import ProviderRegistry
from canvaspipe.store.persistence import PersistenceLayer
from canvaspipe.store.state import AppState, Clock, utc_now

logger = logging.getLogger(__name__)


class StepEngine:
    def __init__(
        self,
        state: AppState,
        providers: ProviderRegistry,
        persistence: PersistenceLayer,
        notifier: Optional[Notifier] = None,
        clock: Clock = utc_now,
    ):
        self.state = state
        self.providers = providers
        self.persistence = persistence
        self.notifier = notifier if notifier is not None else LoggingNotifier()
        self.clock = clock

    def get_step(self, step_id: str) -> Optional[PipelineStep]:
        return self.state.steps.get(step_id)

    def list_steps(self, status: Optional[str] = None) -> list[PipelineStep]:
        """Steps newest first, optionally filtered by status."""
        steps = [s for s in self.state.steps.values() if status is None or s.status == status]
        return sorted(steps, key=lambda s: s.created_at, reverse=True)

    def enqueue_step(
        self,
        kind: Union[StepKind, str],
        input_asset_ids: Iterable[str],
        params: dict[str, Any],
        provider_key: str,
    ) -> str:
        """Record a queued step and return its id.

        Unknown kinds are accepted here and failed by ``run_step``.
        Input asset ids are not validated until the step runs.
        """
        if isinstance(kind, Enum):
            kind = kind.value
        now = self.clock()
        step = PipelineStep(
            id=str(uuid.uuid4()),
            kind=kind,
            input_asset_ids=list(input_asset_ids),
            params=dict(params or {}),
            provider=provider_key,
            status="queued",
            created_at=now,
            updated_at=now,
        )
        self.state.steps[step.id] = step
        logger.debug("Enqueued %s step %s on %s", step.kind, step.id, provider_key)
        return step.id

    def _transition(self, step: PipelineStep, target: str, **fields: Any) -> None:
        if not can_transition(step.status, target):
            raise StepReentryError(step.id, step.status)
        step.status = target
        for name, value in fields.items():
            setattr(step, name, value)
        step.updated_at = self.clock()

    async def run_step(self, step_id: str) -> None:
        """Execute a queued step.

        Args:
            step_id: Id returned by enqueue_step. Unknown ids are ignored.

        Raises:
            StepReentryError: If the step is not queued (already running
                or finished). The adapter is never called in that case.
        """
        step = self.state.steps.get(step_id)
        if step is None:
            logger.debug("run_step: no step %s, ignoring", step_id)
            return

        # Claim before the first await so a concurrent caller sees "running"
        if step.status != "queued":
            raise StepReentryError(step.id, step.status)
        self._transition(step, "running")

        inputs = [self.state.assets[i] for i in step.input_asset_ids if i in self.state.assets]
        if len(inputs) < len(step.input_asset_ids):
            logger.debug(
                "Step %s: %d of %d input assets no longer exist",
                step.id, len(step.input_asset_ids) - len(inputs), len(step.input_asset_ids),
            )

        step_start = time.monotonic()
        logger.info("Running %s step %s on %s", step.kind, step.id, step.provider)
        try:
            result = self._classify(step, await self._dispatch(step, inputs))
        except Exception as e:
            message = str(e) or "Unknown error"
            self._transition(step, "failed", error=message)
            logger.warning(
                "%s step %s failed after %.2fs: %s",
                step.kind, step.id, time.monotonic() - step_start, message,
            )
            await self.persistence.persist()
            self.notifier.error(f"{step.kind} failed: {message}")
            return

        self.state.assets[result.id] = result
        self._transition(step, "done", output_asset_id=result.id)
        logger.info(
            "%s step %s completed in %.2fs -> asset %s",
            step.kind, step.id, time.monotonic() - step_start, result.id,
        )
        await self.persistence.persist()
        self.notifier.success(f"{step.kind} completed successfully!")

    def _classify(self, step: PipelineStep, result: Any) -> Asset:
        if not isinstance(result, Asset):
            raise TypeError(f"{step.provider} returned {type(result).__name__}, expected an Asset")
        category = category_for_kind(step.kind)
        if category is None:
            return result
        return result.model_copy(update={"category": category[0], "subcategory": category[1]})

    async def _dispatch(self, step: PipelineStep, inputs: list[Asset]) -> Asset:
        family = family_for_kind(step.kind)
        if family is None:
            raise UnknownStepKindError(f"Unknown step kind: {step.kind}")

        lookup = self.providers.lookup(family, step.provider)
        if not lookup.found:
            raise ProviderNotFoundError(lookup.reason)
        adapter = lookup.adapter

        params = dict(step.params)
        if step.kind in SYNTHESIZED_INSTRUCTIONS and not params.get("instruction"):
            params["instruction"] = SYNTHESIZED_INSTRUCTIONS[step.kind]
        typed = adapter.params_model.model_validate(params)

        if family == "generate":
            return await adapter.generate(typed)

        if not inputs:
            raise MissingInputAssetError(f"{step.kind} step requires an input asset")
        source = inputs[0]

        if family == "edit":
            return await adapter.edit(source, typed)
        if family == "text_overlay":
            return await adapter.add_text(source, typed)
        if family == "animate":
            return await adapter.animate(source, typed)
        return await adapter.add_sound(source, typed)

    async def generate_directly(self, params: dict[str, Any], provider_key: str) -> Asset:
        """Enqueue and run a GENERATE step, returning its output asset.

        Raises:
            StepFailedError: Carrying the step's recorded error.
        """
        step_id = self.enqueue_step(StepKind.GENERATE, [], params, provider_key)
        step = self.state.steps[step_id]
        await self.run_step(step_id)
        if step.status != "done" or step.output_asset_id is None:
            raise StepFailedError(step_id, step.error or "Unknown error")
        return self.state.assets[step.output_asset_id]
