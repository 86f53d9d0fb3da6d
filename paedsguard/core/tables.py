"""
Configuration table loading.

Every clinical table (intervention rules, urgency tiers, protocols, NRP
rules) is a versioned JSON document validated against a pydantic model.
Failures at this boundary are reported as RuleConfigurationError so a bad
deployment fails at startup rather than mid-resuscitation.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Type, TypeVar

from pydantic import BaseModel, ValidationError as PydanticValidationError

from paedsguard.utils import get_logger, RuleConfigurationError

logger = get_logger(__name__)

TableModel = TypeVar("TableModel", bound=BaseModel)


def read_table(path: Path, model: Type[TableModel], table: str) -> TableModel:
    """Read and validate one JSON configuration table."""
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise RuleConfigurationError(
            f"Configuration table not found: {path}",
            table=table,
            details={"path": str(path)},
        ) from exc
    except json.JSONDecodeError as exc:
        raise RuleConfigurationError(
            f"Configuration table is not valid JSON: {path} ({exc.msg})",
            table=table,
            details={"path": str(path), "line": exc.lineno},
        ) from exc

    try:
        parsed = model.model_validate(raw)
    except PydanticValidationError as exc:
        raise RuleConfigurationError(
            f"Configuration table failed validation: {path}",
            table=table,
            details={"path": str(path), "errors": exc.errors(include_url=False)},
        ) from exc

    logger.info(f"Loaded {table} table from {path} (version {getattr(parsed, 'version', '?')})")
    return parsed
