from __future__ import annotations

from collections import defaultdict
import logging
from pathlib import Path

from strudelgraph.app.models.node_schema import ExecutionSpec, NodeCategory, NodeSchemaDocument, NodeTypeSpec

logger = logging.getLogger(__name__)


class NodeSchemaService:
    """Read-only registry of node types, built once and shared by every normalization."""

    def __init__(self, schema_path: Path | None = None) -> None:
        node_types = {node_type.id: node_type for node_type in self._load_builtin_node_types()}
        if schema_path is not None:
            node_types.update(self._load_schema_file(schema_path))
        self._node_types = node_types

    def list_node_types(self, category: NodeCategory | str | None = None) -> list[NodeTypeSpec]:
        node_types = list(self._node_types.values())
        if category:
            node_types = [node_type for node_type in node_types if node_type.category == category]
        return sorted(node_types, key=lambda item: (item.category.value, item.id))

    def get_node_type(self, name: str) -> NodeTypeSpec | None:
        return self._node_types.get(name)

    def categories(self) -> dict[str, int]:
        counters: dict[str, int] = defaultdict(int)
        for node_type in self._node_types.values():
            counters[node_type.category.value] += 1
        return dict(sorted(counters.items(), key=lambda kv: kv[0]))

    @staticmethod
    def fallback_node_type(name: str) -> NodeTypeSpec:
        return NodeTypeSpec(
            id=name,
            category=NodeCategory.MODULATION,
            execution=ExecutionSpec(stage=NodeCategory.MODULATION.value, wraps=False),
            method=name.lower(),
            description=f"Unregistered node type '{name}'.",
        )

    @staticmethod
    def _load_schema_file(path: Path) -> dict[str, NodeTypeSpec]:
        document = NodeSchemaDocument.model_validate_json(path.read_text(encoding="utf-8"))
        logger.info("Loaded %d node types from schema file '%s'", len(document.nodes), path)
        return {name: spec.model_copy(update={"id": name}) for name, spec in document.nodes.items()}

    @staticmethod
    def _spec(
        *,
        name: str,
        category: NodeCategory,
        method: str,
        description: str,
        stage: NodeCategory | None = None,
        wraps: bool = False,
        argument_property: str | None = None,
        default_argument: str | int | float | None = None,
        tags: tuple[str, ...] = (),
    ) -> NodeTypeSpec:
        return NodeTypeSpec(
            id=name,
            category=category,
            execution=ExecutionSpec(stage=(stage or category).value, wraps=wraps),
            method=method,
            argument_property=argument_property,
            default_argument=default_argument,
            description=description,
            tags=tags,
        )

    def _load_builtin_node_types(self) -> list[NodeTypeSpec]:
        return [
            self._spec(
                name="Instrument",
                category=NodeCategory.SOURCE,
                method="s",
                argument_property="sound",
                default_argument="bd",
                description="Play a named sound or synth.",
                tags=("sound", "source"),
            ),
            self._spec(
                name="DrumSymbol",
                category=NodeCategory.SOURCE,
                method="s",
                argument_property="symbol",
                default_argument="bd",
                description="Play a drum symbol in mini-notation.",
                tags=("drums", "source"),
            ),
            self._spec(
                name="Stack",
                category=NodeCategory.STRUCTURAL,
                method="stack",
                description="Play several patterns at the same time.",
                tags=("structure",),
            ),
            self._spec(
                name="Cat",
                category=NodeCategory.STRUCTURAL,
                method="cat",
                description="Play patterns one cycle after another.",
                tags=("structure",),
            ),
            self._spec(
                name="Seq",
                category=NodeCategory.STRUCTURAL,
                method="seq",
                description="Squeeze patterns into a single cycle.",
                tags=("structure",),
            ),
            self._spec(
                name="Fast",
                category=NodeCategory.RHYTHMIC,
                method="fast",
                description="Speed up the pattern by a factor.",
                tags=("time",),
            ),
            self._spec(
                name="Slow",
                category=NodeCategory.RHYTHMIC,
                method="slow",
                description="Slow down the pattern by a factor.",
                tags=("time",),
            ),
            self._spec(
                name="Note",
                category=NodeCategory.PITCH,
                method="note",
                description="Set note numbers or names.",
                tags=("pitch",),
            ),
            self._spec(
                name="Speed",
                category=NodeCategory.PITCH,
                method="speed",
                description="Change sample playback speed.",
                tags=("pitch", "sample"),
            ),
            self._spec(
                name="Gain",
                category=NodeCategory.MODULATION,
                method="gain",
                description="Scale the output volume.",
                tags=("amplitude",),
            ),
            self._spec(
                name="LPF",
                category=NodeCategory.SPECTRAL,
                method="lpf",
                description="Low-pass filter cutoff in Hz.",
                tags=("filter",),
            ),
            self._spec(
                name="HPF",
                category=NodeCategory.SPECTRAL,
                method="hpf",
                description="High-pass filter cutoff in Hz.",
                tags=("filter",),
            ),
            self._spec(
                name="BPF",
                category=NodeCategory.SPECTRAL,
                method="bpf",
                description="Band-pass filter center frequency in Hz.",
                tags=("filter",),
            ),
            self._spec(
                name="Pan",
                category=NodeCategory.SPACE,
                method="pan",
                description="Stereo position between left and right.",
                tags=("space",),
            ),
            self._spec(
                name="Delay",
                category=NodeCategory.SPACE,
                method="delay",
                description="Delay send level.",
                tags=("space",),
            ),
            self._spec(
                name="Room",
                category=NodeCategory.SPACE,
                method="room",
                description="Reverb send level.",
                tags=("space",),
            ),
            self._spec(
                name="Jux",
                category=NodeCategory.WRAPPER,
                method="jux",
                wraps=True,
                description="Apply a function to the right channel only.",
                tags=("wrapper", "space"),
            ),
            self._spec(
                name="Every",
                category=NodeCategory.WRAPPER,
                method="every",
                wraps=True,
                description="Apply a function every n cycles.",
                tags=("wrapper", "time"),
            ),
            self._spec(
                name="Sometimes",
                category=NodeCategory.WRAPPER,
                method="sometimes",
                wraps=True,
                description="Apply a function with 50% probability per event.",
                tags=("wrapper", "random"),
            ),
        ]
