"""Load the validator catalog and rule files from disk."""

from dataclasses import dataclass
from pathlib import Path

import yaml

from sigma_editor.rules import RuleRecord
from sigma_editor.rules.parser import parse

DEFAULT_CATALOG = Path(__file__).resolve().parent / "catalog.yml"

_REQUIRED_FIELDS = ("log_types", "levels", "statuses", "tag_prefix")


@dataclass(frozen=True)
class Catalog:
    """Closed sets the field validators check against."""

    log_types: tuple[str, ...]
    levels: tuple[str, ...]
    statuses: tuple[str, ...]
    tag_prefix: str


def load_catalog(path: str | Path | None = None) -> Catalog:
    """Read a catalog YAML file; the bundled one when *path* is None."""
    path = Path(path) if path is not None else DEFAULT_CATALOG
    with open(path) as f:
        definition = yaml.safe_load(f)

    if not isinstance(definition, dict):
        raise ValueError(f"{path.name}: catalog must be a mapping")
    for field in _REQUIRED_FIELDS:
        if field not in definition:
            raise ValueError(f"{path.name}: missing required field '{field}'")
    for field in ("log_types", "levels", "statuses"):
        if not isinstance(definition[field], list) or not definition[field]:
            raise ValueError(f"{path.name}: '{field}' must be a non-empty list")

    return Catalog(
        log_types=tuple(str(v) for v in definition["log_types"]),
        levels=tuple(str(v).lower() for v in definition["levels"]),
        statuses=tuple(str(v) for v in definition["statuses"]),
        tag_prefix=str(definition["tag_prefix"]),
    )


def load_rule(path: str | Path) -> RuleRecord:
    """Parse a single rule file.  ParseError propagates with its line."""
    with open(path) as f:
        return parse(f.read())


def load_rules(directory: str | Path) -> list[RuleRecord]:
    """Glob *.yml in *directory*, parse each, return the records."""
    directory = Path(directory)
    if not directory.is_dir():
        raise FileNotFoundError(f"Rule directory not found: {directory}")
    return [load_rule(path) for path in sorted(directory.glob("*.yml"))]
