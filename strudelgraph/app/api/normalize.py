from __future__ import annotations

from fastapi import APIRouter, Depends

from strudelgraph.app.api.deps import get_normalizer
from strudelgraph.app.models.graph import PatternGraph
from strudelgraph.app.models.normalization import NormalizationResult, NormalizationRules
from strudelgraph.app.services.normalizer_service import NormalizerService

router = APIRouter(tags=["normalize"])


# Plain def: normalization is CPU-bound, FastAPI runs it in the threadpool.
@router.post("/normalize", response_model=NormalizationResult)
def normalize_graph(
    graph: PatternGraph,
    normalizer: NormalizerService = Depends(get_normalizer),
) -> NormalizationResult:
    return normalizer.normalize_graph(graph)


@router.get("/rules", response_model=NormalizationRules)
async def get_rules(normalizer: NormalizerService = Depends(get_normalizer)) -> NormalizationRules:
    return normalizer.rules
