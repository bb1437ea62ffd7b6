from __future__ import annotations

from strudelgraph.app.models.normalization import ErrorKind


class NormalizationError(Exception):
    kind: ErrorKind = ErrorKind.INTERNAL_ERROR

    def __init__(self, diagnostics: list[str]):
        self.diagnostics = diagnostics
        super().__init__("; ".join(diagnostics) or "Graph normalization failed")


class CycleDetectedError(NormalizationError):
    kind = ErrorKind.CYCLE_DETECTED


class MalformedPropertiesError(NormalizationError):
    kind = ErrorKind.MALFORMED_PROPERTIES


class UnsupportedFanOutError(NormalizationError):
    kind = ErrorKind.UNSUPPORTED_FAN_OUT
