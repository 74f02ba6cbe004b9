"""Four-step analysis orchestrator.

Step 1 analyzes the request text, Step 2 fans out over the assets, Step 3
combines both (or builds the asset-free plan), and Step 4 assembles the final
document. The first failed step stops the run.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional, Sequence

from .asset_analyzer import analyze_assets
from .combiner import combine_query_and_assets
from .config import Settings
from .fallback import build_default_combined
from .models import AssetInput
from .monitoring import record_pipeline_run
from .progress import ProgressTracker
from .providers import TextModelClient, VisionModelClient
from .query_analyzer import analyze_user_query
from .result import Result
from .summarizer import create_final_analysis_output
from .utils import clamp, unique, utc_now_iso

logger = logging.getLogger(__name__)

STEP_LABELS = {
    "step1": "Query analysis",
    "step2": "Asset analysis",
    "step3": "Combination",
    "step4": "Summary",
}


def efficiency_score(asset_count: int, total_ms: int) -> int:
    if total_ms <= 0:
        return 100
    expected = asset_count * 15000 + 30000
    return int(clamp(round(expected / total_ms * 100), 0, 100))


class AnalysisPipeline:
    def __init__(
        self,
        settings: Settings,
        text_client,
        vision_client,
        tracker: Optional[ProgressTracker] = None,
    ) -> None:
        self.settings = settings
        self.text_client = text_client
        self.vision_client = vision_client
        self.tracker = tracker

    def _fail(self, step: str, error: Optional[str], mode: str) -> Result:
        label = STEP_LABELS[step]
        message = f"{label} failed: {error or 'unknown error'}"
        logger.error("Pipeline stopped at %s: %s", step, error)
        record_pipeline_run(mode, "failed")
        if self.tracker is not None:
            self.tracker.failed(label, error or "unknown error")
        return Result.fail(message)

    def _on_asset_start(self, asset: AssetInput) -> None:
        if self.tracker is not None:
            self.tracker.asset_started(asset.id, asset.media_type)

    def run(
        self,
        query: str,
        assets: Sequence[AssetInput],
        options: Optional[Dict[str, Any]] = None,
        hints: Optional[Dict[str, Any]] = None,
    ) -> Result:
        options = options or {}
        step_options = {step: dict(options.get(step) or {}) for step in STEP_LABELS}
        mode = "asset_driven" if assets else "asset_free"
        timings: Dict[str, int] = {}
        started = time.monotonic()

        if self.tracker is not None:
            self.tracker.init(len(assets))

        mark = time.monotonic()
        query_step = analyze_user_query(query, self.text_client, step_options["step1"])
        timings["step1"] = int((time.monotonic() - mark) * 1000)
        if not query_step.success:
            return self._fail("step1", query_step.error, mode)
        query_result = query_step.result

        mark = time.monotonic()
        pipeline_cfg = self.settings.pipeline
        asset_step = analyze_assets(
            list(assets),
            query_result.get("normalized_prompt") or query,
            self.vision_client,
            max_concurrent=step_options["step2"].get("max_concurrent", pipeline_cfg.max_concurrent_assets),
            timeout_per_asset=step_options["step2"].get("timeout_per_asset", pipeline_cfg.asset_timeout_sec),
            options=step_options["step2"],
            on_asset_start=self._on_asset_start,
        )
        timings["step2"] = int((time.monotonic() - mark) * 1000)
        if not asset_step.success:
            return self._fail("step2", asset_step.error, mode)
        asset_result = asset_step.result

        if self.tracker is not None:
            self.tracker.merging()

        mark = time.monotonic()
        step3_options = {"enable_ai_synthesis": pipeline_cfg.enable_ai_synthesis, **step_options["step3"]}
        if assets:
            combine_step = combine_query_and_assets(query_result, asset_result, self.text_client, step3_options)
            if not combine_step.success:
                timings["step3"] = int((time.monotonic() - mark) * 1000)
                return self._fail("step3", combine_step.error, mode)
            combined = combine_step.result
            synthesis_model = combine_step.model_used
        else:
            combined = build_default_combined(
                query_result, hints, optimization_focus=step3_options.get("optimization_focus", "balanced")
            )
            synthesis_model = None
        timings["step3"] = int((time.monotonic() - mark) * 1000)

        mark = time.monotonic()
        step4_options = {"pipeline_version": pipeline_cfg.pipeline_version, **step_options["step4"]}
        summary_step = create_final_analysis_output(
            query_result,
            asset_result,
            combined,
            step4_options,
            analysis_id=combined["project_id"],
            timestamp=utc_now_iso(),
            step_timings=timings,
        )
        timings["step4"] = int((time.monotonic() - mark) * 1000)
        if not summary_step.success:
            return self._fail("step4", summary_step.error, mode)
        analysis = summary_step.result

        total_ms = int((time.monotonic() - started) * 1000)
        models_used: List[str] = unique(
            model
            for model in [
                query_result.get("processing_metadata", {}).get("model_used"),
                *asset_result.get("processing_metadata", {}).get("models_used", []),
                synthesis_model,
            ]
            if model
        )
        performance = {
            "total_time_ms": total_ms,
            "step_breakdown": dict(timings),
            "assets_processed": asset_result.get("total_assets", 0),
            "models_used": models_used,
            "efficiency_score": efficiency_score(len(assets), total_ms),
        }

        record_pipeline_run(mode, "success")
        if self.tracker is not None:
            self.tracker.complete(analysis)
        logger.info(
            "Pipeline finished in %sms (%s, %d assets, status %s)",
            total_ms,
            mode,
            len(assets),
            analysis["analysis_metadata"]["completion_status"],
        )
        return Result.ok(
            {
                "analysis": analysis,
                "query_result": query_result,
                "asset_result": asset_result,
                "combined": combined,
                "performance_metrics": performance,
                "models_used": models_used,
            }
        )


def build_pipeline(settings: Settings, tracker: Optional[ProgressTracker] = None) -> AnalysisPipeline:
    return AnalysisPipeline(
        settings,
        TextModelClient(settings.text_model),
        VisionModelClient(settings.vision_model),
        tracker=tracker,
    )
