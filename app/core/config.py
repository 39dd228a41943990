from dataclasses import dataclass
from typing import Optional
import os


@dataclass(frozen=True)
class Settings:
    baseline_path: Optional[str] = "cache/baseMetrics.json"
    min_accuracy_threshold: float = 70.0
    expected_total_fields: Optional[int] = None
    completeness_strategy: str = "weighted"  # "weighted" | "section"

    # Regeneration (tier 6 of the repair cascade)
    enable_regeneration: bool = False
    generator_host: str = "http://localhost:11434"
    generator_model: str = "qwen2.5:3b-instruct"
    generator_timeout_s: float = 600.0

    log_level: str = "INFO"


def _optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    return int(raw)


def load_settings() -> Settings:
    strategy = os.getenv("COMPLETENESS_STRATEGY", "weighted").strip().lower()
    if strategy not in ("weighted", "section"):
        raise ValueError(f"COMPLETENESS_STRATEGY must be 'weighted' or 'section', got '{strategy}'")

    return Settings(
        baseline_path=os.getenv("BASELINE_PATH", "cache/baseMetrics.json").strip() or None,
        min_accuracy_threshold=float(os.getenv("MIN_ACCURACY_THRESHOLD", "70")),
        expected_total_fields=_optional_int("EXPECTED_TOTAL_FIELDS"),
        completeness_strategy=strategy,
        enable_regeneration=os.getenv("ENABLE_REGENERATION", "0").strip() == "1",
        generator_host=os.getenv("GENERATOR_HOST", "http://localhost:11434").strip(),
        generator_model=os.getenv("GENERATOR_MODEL", "qwen2.5:3b-instruct").strip(),
        generator_timeout_s=float(os.getenv("GENERATOR_TIMEOUT_S", "600")),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
    )
