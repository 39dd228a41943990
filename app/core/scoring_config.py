"""
Weights for the completeness scorers, kept as data rather than code.

Field weights are keyed by qualified path: "<section>.<field>". Entry-level
sections (education, experience) use the same key for every entry.
"""

import math
from typing import Dict

from pydantic import BaseModel, Field, model_validator


DEFAULT_FIELD_WEIGHTS: Dict[str, float] = {
    # Personal info
    "personal_info.name": 3.0,  # Critical
    "personal_info.email": 2.0,  # Critical
    "personal_info.phone": 2.0,  # Critical
    "personal_info.location": 1.0,
    "personal_info.linkedin": 1.0,
    "personal_info.github": 0.8,
    "personal_info.summary": 1.5,

    # Per education entry
    "education.institution": 2.0,
    "education.degree": 1.5,
    "education.field_of_study": 1.5,
    "education.start_date": 1.0,
    "education.end_date": 1.0,
    "education.gpa": 0.5,  # Optional
    "education.location": 0.5,

    # Per experience entry
    "experience.company": 2.5,  # Critical
    "experience.position": 2.5,  # Critical
    "experience.start_date": 1.0,
    "experience.end_date": 1.0,
    "experience.location": 0.7,
    "experience.description": 2.0,

    # Skills groups (non-empty list counts as populated)
    "skills.programming_languages": 1.5,
    "skills.frameworks": 1.2,
    "skills.tools": 1.0,
    "skills.soft_skills": 1.0,
    "skills.other": 0.8,
}


class SectionWeights(BaseModel):
    personal_info: float = Field(default=0.25, ge=0.0, le=1.0)
    education: float = Field(default=0.25, ge=0.0, le=1.0)
    experience: float = Field(default=0.3, ge=0.0, le=1.0)
    skills: float = Field(default=0.2, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _weights_sum_to_one(self) -> "SectionWeights":
        total = self.personal_info + self.education + self.experience + self.skills
        if not math.isclose(total, 1.0, abs_tol=1e-6):
            raise ValueError(f"section weights must sum to 1.0, got {total:.4f}")
        return self


class ScoringConfig(BaseModel):
    section_weights: SectionWeights = Field(default_factory=SectionWeights)
    field_weights: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_FIELD_WEIGHTS))
    default_field_weight: float = 1.0
    min_accuracy_threshold: float = Field(default=70.0, ge=0.0, le=100.0)
    description_bonus_per_entry: float = 0.1
    description_bonus_cap: float = 0.3
    skill_bonus_per_entry: float = 0.06
    skill_bonus_cap: float = 0.3

    def weight(self, path: str) -> float:
        return self.field_weights.get(path, self.default_field_weight)
