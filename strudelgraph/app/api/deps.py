from __future__ import annotations

from fastapi import Depends, Request

from strudelgraph.app.core.container import AppContainer
from strudelgraph.app.services.normalizer_service import NormalizerService


def get_container(request: Request) -> AppContainer:
    return request.app.state.container


def get_normalizer(container: AppContainer = Depends(get_container)) -> NormalizerService:
    return container.normalizer_service
