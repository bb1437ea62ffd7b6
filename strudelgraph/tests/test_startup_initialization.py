from __future__ import annotations

import json
from pathlib import Path

from fastapi.testclient import TestClient

from strudelgraph.app.core.config import get_settings
from strudelgraph.app.main import create_app


def test_startup_loads_node_schema_file_from_settings(tmp_path: Path, monkeypatch) -> None:
    schema_path = tmp_path / "schema" / "nodes.json"
    schema_path.parent.mkdir(parents=True)
    schema_path.write_text(
        json.dumps(
            {
                "nodes": {
                    "Crush": {
                        "id": "Crush",
                        "category": "spectral",
                        "method": "crush",
                        "execution": {"stage": "spectral"},
                    }
                }
            }
        ),
        encoding="utf-8",
    )

    monkeypatch.setenv("STRUDELGRAPH_NODE_SCHEMA_PATH", str(schema_path))
    monkeypatch.delenv("STRUDELGRAPH_FAN_OUT_POLICY", raising=False)
    get_settings.cache_clear()

    app = create_app()
    with TestClient(app) as client:
        listed = client.get("/api/node-types/Crush")
        assert listed.status_code == 200
        assert listed.json()["method"] == "crush"

        response = client.post(
            "/api/normalize",
            json={
                "nodes": [
                    {"id": "src", "type": "Instrument", "properties": {"strudelProperties": {"sound": "bd"}}},
                    {"id": "p", "type": "Pan", "properties": {"strudelProperties": {"pan": 0.5}}},
                    {"id": "c", "type": "Crush", "properties": {"strudelProperties": {"crush": 4}}},
                ],
                "connections": [
                    {"sourceNodeId": "src", "targetNodeId": "p"},
                    {"sourceNodeId": "p", "targetNodeId": "c"},
                ],
            },
        )
        assert response.status_code == 200
        assert response.json()["code"] == 's("bd").crush(4).pan(0.5)'
        assert response.json()["metadata"]["diagnostics"] == []

    get_settings.cache_clear()
