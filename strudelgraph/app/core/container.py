from __future__ import annotations

from dataclasses import dataclass

from strudelgraph.app.core.config import Settings
from strudelgraph.app.services.node_schema_service import NodeSchemaService
from strudelgraph.app.services.normalizer_service import NormalizerService


@dataclass(slots=True)
class AppContainer:
    settings: Settings
    node_schema_service: NodeSchemaService
    normalizer_service: NormalizerService
