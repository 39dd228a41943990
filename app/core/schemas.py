from pydantic import BaseModel, Field
from typing import Any, Dict, List, Literal, Optional


CompletenessStrategy = Literal["section", "weighted"]
Percentage = float  # 0.0 to 100.0


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class RepairReport(BaseModel):
    """How a raw generator response was turned into data."""
    tier: str = Field(..., description="Name of the tier whose output parsed, or 'empty_fallback'")
    escalated: bool = Field(default=False, description="A stricter regeneration request was issued")
    recovered: bool = Field(default=True, description="False when the empty fallback record was returned")
    attempted_tiers: List[str] = Field(default_factory=list)


class AccuracyScore(BaseModel):
    """Universal scorer output, whichever scorer produced it."""
    score: Percentage = Field(..., ge=0.0, le=100.0)
    completeness: Percentage = Field(..., ge=0.0, le=100.0)
    confidence: Percentage = Field(..., ge=0.0, le=100.0)
    field_scores: Dict[str, float] = Field(default_factory=dict, description="Per-section scores (0-100)")
    missing_fields: List[str] = Field(default_factory=list)
    confidence_reasons: List[str] = Field(default_factory=list, description="Why confidence is this value")


class ConsensusScore(AccuracyScore):
    """Agreement of a candidate with its trusted baseline."""
    structural_fidelity: Percentage = 0.0
    field_accuracy: Percentage = 0.0
    consensus_source: str = "none"
    consensus_strength: float = 0.0
    compared_fields: int = 0


class StructuralReport(BaseModel):
    shape: Literal["hierarchical", "flat", "unknown"]
    structural_score: Percentage = Field(..., ge=0.0, le=100.0)
    category_assignment: Percentage = 0.0
    completeness: Percentage = 0.0
    overall: Percentage = 0.0
    missing_fields: List[str] = Field(default_factory=list)


class EmptinessResult(BaseModel):
    percentage: int
    total_fields: int
    non_empty_fields: int
    expected_total_fields: Optional[int] = None
    expected_percentage: Optional[int] = None  # May exceed 100


# --- Résumé-shaped records scored by the completeness scorers ---

class PersonalInfo(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None
    linkedin: Optional[str] = None
    github: Optional[str] = None
    summary: Optional[str] = None


class EducationEntry(BaseModel):
    """Education entry in a résumé record."""
    institution: Optional[str] = None  # University, School, Institute name
    degree: Optional[str] = None  # Bachelor of Science, M.S., etc.
    field_of_study: Optional[str] = None
    start_date: Optional[str] = None  # YYYY or MM/YYYY
    end_date: Optional[str] = None  # YYYY, MM/YYYY or Present
    gpa: Optional[str] = None
    location: Optional[str] = None


class ExperienceEntry(BaseModel):
    company: Optional[str] = None
    position: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    location: Optional[str] = None
    description: List[str] = Field(default_factory=list)


class Skills(BaseModel):
    programming_languages: List[str] = Field(default_factory=list)
    frameworks: List[str] = Field(default_factory=list)
    tools: List[str] = Field(default_factory=list)
    soft_skills: List[str] = Field(default_factory=list)
    other: List[str] = Field(default_factory=list)


class CVRecord(BaseModel):
    personal_info: PersonalInfo = Field(default_factory=PersonalInfo)
    education: List[EducationEntry] = Field(default_factory=list)
    experience: List[ExperienceEntry] = Field(default_factory=list)
    skills: Skills = Field(default_factory=Skills)


# --- HTTP request bodies ---

class RepairRequest(BaseModel):
    raw: str = Field(..., description="Raw generator response text")


class RepairResponse(BaseModel):
    value: Any
    repair: RepairReport
    token_usage: TokenUsage


class AssessRequest(BaseModel):
    raw: str = Field(..., description="Raw generator response text")
    source_key: Optional[str] = Field(default=None, description="Baseline lookup key (source document id)")
    json_schema: Optional[Dict[str, Any]] = Field(default=None, description="Target schema, used only in the regeneration prompt")
    source_text: Optional[str] = Field(default=None, description="Document text the generator worked from")
    instructions: Optional[str] = None


class RecordRequest(BaseModel):
    data: Dict[str, Any]


class CompletenessRequest(BaseModel):
    data: Dict[str, Any]
    strategy: CompletenessStrategy = "weighted"


class ConsensusRequest(BaseModel):
    data: Dict[str, Any]
    source_key: Optional[str] = None


class EmptinessRequest(BaseModel):
    data: Any = None
    expected_total_fields: Optional[int] = Field(default=None, ge=0)
