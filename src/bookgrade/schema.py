"""Generate JSON Schema and docs for the book and catalog YAML formats."""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import BaseModel

from bookgrade.config import BookConfig, CatalogConfig

SCHEMAS: dict[str, type[BaseModel]] = {
    "book": BookConfig,
    "catalog": CatalogConfig,
}


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def generate_json_schema(kind: str) -> dict:
    schema = SCHEMAS[kind].model_json_schema()
    # Nested models sorted by name so regenerated files diff cleanly.
    if "$defs" in schema:
        schema["$defs"] = dict(sorted(schema["$defs"].items()))
    return schema


def write_json_schemas(out_dir: Path) -> list[Path]:
    written = []
    for kind in SCHEMAS:
        path = out_dir / f"bookgrade-{kind}.schema.json"
        _ensure_parent(path)
        path.write_text(json.dumps(generate_json_schema(kind), indent=2) + "\n")
        written.append(path)
    return written


def _field_lines(schema: dict, model_name: str | None = None) -> list[str]:
    model = schema if model_name is None else schema.get("$defs", {}).get(model_name, {})
    required = set(model.get("required", []))
    lines = []
    for name, prop in model.get("properties", {}).items():
        kind = "required" if name in required else "optional"
        default = f", default `{prop['default']}`" if "default" in prop else ""
        lines.append(f"- `{name}` ({kind}{default})")
    return lines


def generate_schema_doc() -> str:
    book = generate_json_schema("book")
    catalog = generate_json_schema("catalog")

    lines: list[str] = []
    lines.append("# bookgrade YAML Schema")
    lines.append("")
    lines.append("This doc is generated from the Pydantic models.")
    lines.append("")
    lines.append("## Book config")
    lines.extend(_field_lines(book))
    lines.append("")
    lines.append("### Chapters")
    lines.extend(_field_lines(book, "ChapterConfig"))
    lines.append("- `status`: one of Planned, InProgress, Complete, Published")
    lines.append("")
    lines.append("## Rule catalog")
    lines.extend(_field_lines(catalog))
    lines.append("")
    lines.append("### Rules")
    lines.extend(_field_lines(catalog, "RuleConfig"))
    lines.append("")
    lines.append("### Ladder rungs")
    lines.append(
        "Each rung is `{<op>: <threshold>, points: <n>}` with exactly one of "
        "`eq`, `ge`, `gt`, `le`, `lt`. Rungs run from strictest to most lenient; "
        "the first rung that holds awards its points."
    )
    lines.append("")
    return "\n".join(lines)


def write_schema_doc(path: Path) -> None:
    _ensure_parent(path)
    path.write_text(generate_schema_doc())
