from dataclasses import dataclass, field
from typing import List, Dict, Optional

@dataclass
class AnalysisState:
    """Audit log and state container for a single analysis run."""
    warnings: List[str] = field(default_factory=list)
    stages_completed: List[str] = field(default_factory=list)
    stage_timings: Dict[str, float] = field(default_factory=dict)
    failed_stage: Optional[str] = None
    scoring_backend: Optional[str] = None
    unscored_rows: List[int] = field(default_factory=list)
