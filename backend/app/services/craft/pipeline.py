"""
C.R.A.F.T post-processing pipeline.

Runs the five stages in a fixed order and always returns exactly five
PostProcessStep records:

    cut -> review -> add -> fact-check -> trust-build

The order is owned by CraftPipeline.STAGES and is not configurable;
only the rule tables are. Given identical text, region, focus term and
date, the output is identical.
"""
from datetime import date
from typing import Callable, Optional, Tuple

from app.core.logging import get_logger
from app.core.metrics import record_craft_step
from app.services.ai.schema import PipelineError, PostProcessResult, PostProcessStep
from app.services.craft.rules import CraftRules
from app.services.craft.stages import (
    StageContext,
    StageOutcome,
    add_media,
    cut,
    fact_check,
    review,
    trust_build,
)
from app.services.routing.regions import DEFAULT_REGION

logger = get_logger(__name__)

Stage = Callable[[str, StageContext], StageOutcome]


class CraftPipeline:
    """Fixed-order content post-processor."""

    STAGES: Tuple[Tuple[str, Stage], ...] = (
        ("cut", cut),
        ("review", review),
        ("add", add_media),
        ("fact-check", fact_check),
        ("trust-build", trust_build),
    )

    def __init__(
        self,
        rules: Optional[CraftRules] = None,
        today: Callable[[], date] = date.today,
    ):
        self.rules = rules or CraftRules()
        self.today = today

    def process(
        self,
        text: str,
        target_region: str = DEFAULT_REGION,
        focus_term: Optional[str] = None,
    ) -> PostProcessResult:
        """
        Run all five stages over `text`.

        Args:
            text: Provider output (markup is preserved)
            target_region: Market used for the linking-opportunity note
            focus_term: Optional keyword for heading and density checks

        Returns:
            PostProcessResult with the rewritten text and five step records
        """
        ctx = StageContext(
            target_region=target_region or DEFAULT_REGION,
            focus_term=focus_term or None,
            rules=self.rules,
            today=self.today,
        )

        steps = []
        for name, stage in self.STAGES:
            try:
                outcome = stage(text, ctx)
            except Exception as exc:
                raise PipelineError("post_process", f"{name} stage failed: {exc}") from exc
            text = outcome.text
            steps.append(
                PostProcessStep(
                    name=name,
                    description=outcome.description,
                    applied=outcome.applied,
                )
            )
            record_craft_step(name, outcome.applied)

        logger.debug(
            "craft_pipeline_completed",
            target_region=ctx.target_region,
            focus_term=ctx.focus_term,
            applied_steps=[s.name for s in steps if s.applied],
            output_length=len(text),
        )
        return PostProcessResult(text=text, steps=steps)


_craft_pipeline: Optional[CraftPipeline] = None


def get_craft_pipeline() -> CraftPipeline:
    """Get global C.R.A.F.T pipeline instance."""
    global _craft_pipeline
    if _craft_pipeline is None:
        _craft_pipeline = CraftPipeline()
    return _craft_pipeline
