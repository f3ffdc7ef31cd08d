"""Architectural tests for the survey flow service.

These tests use static inspection of the source tree, the OpenAPI document
and the JSON Schemas to keep the layering intact: the flow engine has no
web-framework dependency, routes issue no SQL, and every published path and
schema stays in step with the application.
"""

from __future__ import annotations

import ast
import json
import os
from typing import Dict, Iterable, List

import pytest


ROOT = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
LOGIC_DIR = os.path.join(ROOT, "app", "logic")
ROUTES_DIR = os.path.join(ROOT, "app", "routes")
OPENAPI_PATH = os.path.join(ROOT, "docs", "api", "openapi.yaml")
SCHEMAS_DIR = os.path.join(ROOT, "schemas")

ENGINE_MODULES = (
    "condition_evaluator.py",
    "rule_evaluator.py",
    "flow_state.py",
    "graph_analyzer.py",
    "response_validator.py",
    "rule_structure.py",
)


def _python_files(root: str) -> Iterable[str]:
    for name in sorted(os.listdir(root)):
        if name.endswith(".py"):
            yield os.path.join(root, name)


def _imported_modules(path: str) -> List[str]:
    with open(path, "r", encoding="utf-8") as f:
        tree = ast.parse(f.read(), filename=path)
    out: List[str] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            out.extend(alias.name for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and node.module:
            out.append(node.module)
    return out


def _require_yaml_loader():
    try:
        import yaml  # type: ignore
    except Exception as exc:  # pragma: no cover - environment dependent
        pytest.fail(f"PyYAML is required for architectural checks but could not be imported: {exc}")
    return yaml


def load_openapi() -> Dict:
    assert os.path.exists(OPENAPI_PATH), f"OpenAPI file missing: {OPENAPI_PATH}"
    yaml = _require_yaml_loader()
    with open(OPENAPI_PATH, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def test_flow_engine_has_no_web_framework_imports() -> None:
    offenders = []
    for path in _python_files(LOGIC_DIR):
        for module in _imported_modules(path):
            if module.split(".")[0] in {"fastapi", "starlette"}:
                offenders.append(f"{os.path.basename(path)} imports {module}")
    assert offenders == []


def test_engine_components_do_not_touch_the_database() -> None:
    offenders = []
    for name in ENGINE_MODULES:
        for module in _imported_modules(os.path.join(LOGIC_DIR, name)):
            if module.split(".")[0] == "sqlalchemy" or module.startswith("app.db") or ".repository_" in module:
                offenders.append(f"{name} imports {module}")
    assert offenders == []


def test_routes_issue_no_sql() -> None:
    offenders = []
    for path in _python_files(ROUTES_DIR):
        for module in _imported_modules(path):
            if module.split(".")[0] == "sqlalchemy" or module.startswith("app.db") or ".repository_" in module:
                offenders.append(f"{os.path.basename(path)} imports {module}")
    assert offenders == []


def test_dispatch_tables_are_exhaustive() -> None:
    from app.logic.condition_evaluator import _EVALUATORS
    from app.logic.rule_evaluator import _ACTION_BUILDERS
    from app.models.logic import ConditionType, LogicType

    assert set(_EVALUATORS) == set(ConditionType)
    assert set(_ACTION_BUILDERS) == set(LogicType)


def test_openapi_paths_match_application_routes() -> None:
    from app.main import create_app

    documented = set((load_openapi().get("paths") or {}).keys())
    served = set(create_app(data_source=object()).openapi()["paths"].keys())
    assert documented, "OpenAPI document lists no paths"
    assert documented <= served, f"Documented but not served: {sorted(documented - served)}"
    public = {p for p in served if not p.startswith("/__test__")}
    assert public <= documented, f"Served but not documented: {sorted(public - documented)}"


def test_schemas_are_valid_draft_2020_12() -> None:
    from jsonschema import Draft202012Validator

    names = [n for n in sorted(os.listdir(SCHEMAS_DIR)) if n.endswith(".schema.json")]
    assert names, "No JSON Schemas found"
    for name in names:
        with open(os.path.join(SCHEMAS_DIR, name), "r", encoding="utf-8") as f:
            Draft202012Validator.check_schema(json.load(f))


def test_visualization_schema_tracks_model_fields() -> None:
    from app.models.flow_map import SurveyFlowVisualization

    with open(os.path.join(SCHEMAS_DIR, "SurveyFlowVisualization.schema.json"), "r", encoding="utf-8") as f:
        schema = json.load(f)
    assert set(schema["properties"]) == set(SurveyFlowVisualization.model_fields)
    assert set(schema["required"]) == set(SurveyFlowVisualization.model_fields)
