"""
Quality engine: raw generator text in, scored record out.

    raw text -> RepairCascade -> resolve_placeholders
             -> structure | completeness | consensus | emptiness
             -> record["metadata"]

The baseline store is loaded once, at construction, and only read after
that, so one engine can serve concurrent assessments without locking.
"""

import logging
from typing import Any, Dict, Optional

from app.core.completeness import CompletenessScorer, build_completeness_scorer, is_cv_record
from app.core.config import Settings
from app.core.consensus import BaselineStore, ConsensusMatcher
from app.core.emptiness import measure_emptiness
from app.core.generator import OllamaGenerator, TextGenerator, build_strict_prompt
from app.core.json_repair import RepairCascade, RepairOutcome
from app.core.placeholders import resolve_placeholders
from app.core.schemas import TokenUsage
from app.core.scoring_config import ScoringConfig
from app.core.structural_validator import validate_structure

logger = logging.getLogger(__name__)


class QualityEngine:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        baseline_store: Optional[BaselineStore] = None,
        generator: Optional[TextGenerator] = None,
        completeness_scorer: Optional[CompletenessScorer] = None,
        cascade: Optional[RepairCascade] = None,
    ):
        self.settings = settings or Settings()
        self.baselines = baseline_store if baseline_store is not None else BaselineStore.load(self.settings.baseline_path)
        self.matcher = ConsensusMatcher(self.baselines)
        self.generator = generator
        if self.generator is None and self.settings.enable_regeneration:
            self.generator = OllamaGenerator(
                host=self.settings.generator_host,
                model=self.settings.generator_model,
                timeout_s=self.settings.generator_timeout_s,
            )
        self.completeness_scorer = completeness_scorer or build_completeness_scorer(
            self.settings.completeness_strategy,
            ScoringConfig(min_accuracy_threshold=self.settings.min_accuracy_threshold),
        )
        self.cascade = cascade or RepairCascade()

    async def recover(
        self,
        raw: str,
        schema: Optional[Dict[str, Any]] = None,
        source_text: Optional[str] = None,
        instructions: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> RepairOutcome:
        """Repair cascade plus placeholder resolution."""
        prompt = None
        if self.generator and (source_text or (raw and raw.strip())):
            prompt = build_strict_prompt(schema, instructions, source_text, malformed_response=raw)
        outcome = await self.cascade.recover(raw, generator=self.generator, prompt=prompt, timeout=timeout)
        outcome.value = resolve_placeholders(outcome.value)
        return outcome

    def score_record(self, record: Dict[str, Any], source_key: Optional[str] = None) -> Dict[str, Any]:
        """Run every scorer over an already-parsed record. Returns the metadata block."""
        metadata: Dict[str, Any] = {}
        if source_key:
            metadata["source_file"] = source_key

        structure = validate_structure(record)
        metadata["structure"] = structure.model_dump()

        consensus = self.matcher.evaluate(record, source_key)
        metadata["consensus"] = consensus.model_dump()

        emptiness = measure_emptiness(record, self.settings.expected_total_fields)
        metadata["emptiness"] = emptiness.model_dump(exclude_none=True)

        if is_cv_record(record):
            completeness = self.completeness_scorer.score(record)
            metadata["completeness"] = completeness.model_dump()
            metadata["completeness_strategy"] = self.completeness_scorer.name
            metadata["meets_threshold"] = self.completeness_scorer.meets_threshold(completeness)

        logger.info(
            f"Scored record source={source_key or 'unknown'} structure={structure.structural_score} "
            f"consensus={consensus.score} ({consensus.consensus_source}) emptiness={emptiness.percentage}%"
        )
        return metadata

    async def assess(
        self,
        raw: str,
        source_key: Optional[str] = None,
        schema: Optional[Dict[str, Any]] = None,
        source_text: Optional[str] = None,
        instructions: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Recover, resolve and score one generator response.

        Never raises for data-quality problems: an unrecoverable response comes
        back as an empty record with low scores.
        """
        outcome = await self.recover(raw, schema, source_text, instructions, timeout)

        record = outcome.value if isinstance(outcome.value, dict) else {"value": outcome.value}
        if source_key is None:
            existing = record.get("metadata")
            if isinstance(existing, dict):
                source_key = existing.get("source_file")

        metadata = self.score_record(record, source_key)
        metadata["repair"] = outcome.report().model_dump()
        metadata["token_usage"] = (outcome.token_usage or TokenUsage()).model_dump()

        record["metadata"] = metadata
        return record
