from functools import lru_cache
from typing import Any, Dict

from fastapi import APIRouter, Depends

from app.core.completeness import build_completeness_scorer
from app.core.config import load_settings
from app.core.emptiness import measure_emptiness
from app.core.engine import QualityEngine
from app.core.schemas import (
    AccuracyScore,
    AssessRequest,
    CompletenessRequest,
    ConsensusRequest,
    ConsensusScore,
    EmptinessRequest,
    EmptinessResult,
    RecordRequest,
    RepairRequest,
    RepairResponse,
    StructuralReport,
)
from app.core.scoring_config import ScoringConfig
from app.core.structural_validator import validate_structure

router = APIRouter(tags=["quality"])


@lru_cache(maxsize=1)
def get_engine() -> QualityEngine:
    """One engine per process; the baseline file is read on first use."""
    return QualityEngine(load_settings())


@router.post(
    "/repair",
    response_model=RepairResponse,
    summary="Recover JSON",
    description="Run the repair cascade over a raw generator response and return the parsed value with the tier that recovered it.",
)
async def repair(request: RepairRequest, engine: QualityEngine = Depends(get_engine)):
    outcome = await engine.recover(request.raw)
    return RepairResponse(value=outcome.value, repair=outcome.report(), token_usage=outcome.token_usage)


@router.post(
    "/assess",
    summary="Recover and Score",
    description="Recover a raw generator response, resolve id placeholders and attach every quality score under 'metadata'.",
    responses={
        200: {
            "description": "Recovered record with quality metadata",
            "content": {
                "application/json": {
                    "example": {
                        "resume": [
                            {
                                "category": "Theatre",
                                "category_id": "0b6f8a4e-2c1d-4d8e-9a57-0d1f3c2b7e11",
                                "credits": [
                                    {"title": "Hamlet", "role": "Ghost", "year": "2019", "attached_media": []}
                                ],
                            }
                        ],
                        "resume_show_years": True,
                        "metadata": {
                            "source_file": "actor-42.pdf",
                            "repair": {"tier": "direct", "escalated": False, "recovered": True},
                            "structure": {"shape": "hierarchical", "overall": 78.0},
                            "consensus": {"score": 91, "consensus_source": "actor-42.pdf"},
                            "emptiness": {"percentage": 83, "total_fields": 6, "non_empty_fields": 5},
                        },
                    }
                }
            },
        }
    },
)
async def assess(request: AssessRequest, engine: QualityEngine = Depends(get_engine)) -> Dict[str, Any]:
    """
    Full pipeline for one response.

    Always returns 200 for data-quality problems: unrecoverable input comes
    back as an empty record with repair.recovered = false.
    """
    return await engine.assess(
        request.raw,
        source_key=request.source_key,
        schema=request.json_schema,
        source_text=request.source_text,
        instructions=request.instructions,
    )


@router.post("/score/structure", response_model=StructuralReport, summary="Structural Validation")
def score_structure(request: RecordRequest):
    return validate_structure(request.data)


@router.post("/score/completeness", response_model=AccuracyScore, summary="Résumé Completeness")
def score_completeness(request: CompletenessRequest, engine: QualityEngine = Depends(get_engine)):
    config = ScoringConfig(min_accuracy_threshold=engine.settings.min_accuracy_threshold)
    return build_completeness_scorer(request.strategy, config).score(request.data)


@router.post("/score/consensus", response_model=ConsensusScore, summary="Consensus Agreement")
def score_consensus(request: ConsensusRequest, engine: QualityEngine = Depends(get_engine)):
    return engine.matcher.evaluate(request.data, request.source_key)


@router.post("/score/emptiness", response_model=EmptinessResult, response_model_exclude_none=True, summary="Field Emptiness")
def score_emptiness(request: EmptinessRequest):
    return measure_emptiness(request.data, request.expected_total_fields)
