from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from strudelgraph.app.api.deps import get_container
from strudelgraph.app.core.container import AppContainer
from strudelgraph.app.models.node_schema import NodeCategory, NodeTypeSpec

router = APIRouter(prefix="/node-types", tags=["node-types"])


@router.get("", response_model=list[NodeTypeSpec])
async def list_node_types(
    category: NodeCategory | None = Query(default=None),
    container: AppContainer = Depends(get_container),
) -> list[NodeTypeSpec]:
    return container.node_schema_service.list_node_types(category)


@router.get("/categories")
async def list_categories(container: AppContainer = Depends(get_container)) -> dict[str, int]:
    return container.node_schema_service.categories()


@router.get("/{type_name}", response_model=NodeTypeSpec)
async def get_node_type(type_name: str, container: AppContainer = Depends(get_container)) -> NodeTypeSpec:
    node_type = container.node_schema_service.get_node_type(type_name)
    if not node_type:
        raise HTTPException(status_code=404, detail=f"Node type '{type_name}' not found")
    return node_type
