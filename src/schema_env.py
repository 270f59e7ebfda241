# src/schema_env.py
"""
Generates JSON Schema files for the event log models found in src/logs.py,
placing each schema under schemas/<ClassName>/schema.json, plus one for the
whole LogLine union, so external tooling can read exported logs.
"""
import inspect
import json
from pathlib import Path
from typing import List

from pydantic import BaseModel

import logs


def _write(schema_dict: dict, model_dir: Path) -> Path:
    model_dir.mkdir(parents=True, exist_ok=True)
    schema_file = model_dir / "schema.json"
    with open(schema_file, "w", encoding="utf-8") as f:
        json.dump(schema_dict, f, indent=2)
    return schema_file


def write_schemas(output_base: Path) -> List[Path]:
    output_base.mkdir(parents=True, exist_ok=True)
    written = [_write(logs.LOG_LINE_ADAPTER.json_schema(), output_base / "LogLine")]

    for name, cls in inspect.getmembers(logs, inspect.isclass):
        # only the concrete event models defined in logs.py
        if not issubclass(cls, BaseModel) or cls.__module__ != logs.__name__:
            continue
        if name[0] == "_":
            continue
        written.append(_write(cls.model_json_schema(), output_base / name))
    return written


def main():
    project_root = Path(__file__).resolve().parent.parent
    for schema_file in write_schemas(project_root / "schemas"):
        print(f"✔ Wrote schema to {schema_file}")


if __name__ == "__main__":
    main()
