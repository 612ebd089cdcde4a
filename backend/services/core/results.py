from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class EngineResult:
    """Result object for lease engine operations."""
    success: bool
    record: Optional[Any] = None
    message: str = ""
    extra: Optional[Dict[str, Any]] = None
