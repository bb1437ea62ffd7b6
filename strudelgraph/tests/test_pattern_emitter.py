from __future__ import annotations

import json
from pathlib import Path

import pytest

from strudelgraph.app.models.graph import NodeInstance
from strudelgraph.app.models.normalization import Chain, NormalizationRules, WrappedChain
from strudelgraph.app.services.node_schema_service import NodeSchemaService
from strudelgraph.app.services.normalization_errors import MalformedPropertiesError
from strudelgraph.app.services.pattern_emitter import (
    ChainExpression,
    MethodCall,
    ParallelExpression,
    PatternEmitter,
    SourceCall,
    WrapperExpression,
    format_literal,
)


def _instance(node_id: str, node_type: str, **properties: object) -> NodeInstance:
    return NodeInstance(id=node_id, type=node_type, properties={"strudelProperties": properties})


def test_expression_tree_renders_method_chain() -> None:
    expression = ChainExpression(
        source=SourceCall(function="s", argument="bd"),
        transforms=[MethodCall(name="gain", argument=0.5), MethodCall(name="pan", argument=-0.25)],
    )

    assert expression.render() == 's("bd").gain(0.5).pan(-0.25)'
    assert WrapperExpression(function="jux", inner=expression).render() == 'jux(s("bd").gain(0.5).pan(-0.25))'


def test_parallel_expression_joins_parts_with_space() -> None:
    kick = ChainExpression(source=SourceCall(function="s", argument="bd"))
    hat = ChainExpression(source=SourceCall(function="s", argument="hh"))

    assert ParallelExpression(parts=[kick, hat]).render() == 's("bd") s("hh")'
    assert ParallelExpression().render() == ""


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (True, "true"),
        (False, "false"),
        (3, "3"),
        (2.0, "2"),
        (0.1 * 3, "0.3"),
        (-0.25, "-0.25"),
        ('say "hi"', '"say \\"hi\\""'),
    ],
)
def test_format_literal(value: object, expected: str) -> None:
    assert format_literal(value) == expected


def test_format_literal_rejects_non_finite_and_nested_values() -> None:
    with pytest.raises(MalformedPropertiesError):
        format_literal(float("inf"))
    with pytest.raises(MalformedPropertiesError):
        format_literal([1, 2])  # type: ignore[arg-type]


def test_emitter_renders_plain_and_wrapped_chains() -> None:
    emitter = PatternEmitter(NodeSchemaService(), NormalizationRules())
    wrapper = _instance("w", "Every")
    plain = Chain(nodes=(_instance("src", "DrumSymbol", symbol="bd sd"), _instance("g", "Gain", gain=0.9)))
    wrapped = WrappedChain(
        wrapper=wrapper,
        inner_chain=Chain(nodes=(_instance("src2", "Instrument", sound="piano"), _instance("w", "Every", fast=2))),
        outer_chain=Chain(nodes=(wrapper,)),
    )

    assert emitter.render([plain, wrapped]) == 's("bd sd").gain(0.9) every(s("piano").fast(2))'


def test_emitter_uses_lowercased_type_for_unregistered_wrappers() -> None:
    emitter = PatternEmitter(NodeSchemaService(), NormalizationRules())
    wrapper = _instance("w", "Chop")
    wrapped = WrappedChain(
        wrapper=wrapper,
        inner_chain=Chain(nodes=(_instance("src", "Instrument", sound="bd"),)),
        outer_chain=Chain(nodes=(wrapper,)),
    )

    assert emitter.render([wrapped]) == 'chop(s("bd"))'


def test_effects_render_by_property_name_not_type_method(tmp_path: Path) -> None:
    schema_path = tmp_path / "schema.json"
    schema_path.write_text(
        json.dumps(
            {
                "nodes": {
                    "Crush": {"id": "Crush", "category": "spectral", "method": "bitcrush"},
                    "Chopper": {
                        "id": "Chopper",
                        "category": "wrapper",
                        "method": "chop-it",
                        "execution": {"stage": "rhythmic", "wraps": True},
                    },
                }
            }
        ),
        encoding="utf-8",
    )
    emitter = PatternEmitter(NodeSchemaService(schema_path=schema_path), NormalizationRules())
    source = _instance("src", "Instrument", sound="bd")
    plain = Chain(nodes=(source, _instance("c", "Crush", crush=4)))
    wrapper = _instance("w", "Chopper")
    wrapped = WrappedChain(wrapper=wrapper, inner_chain=Chain(nodes=(source,)), outer_chain=Chain(nodes=(wrapper,)))

    assert emitter.render([plain]) == 's("bd").crush(4)'
    with pytest.raises(MalformedPropertiesError):
        emitter.render([wrapped])


@pytest.mark.parametrize("name", ["my-prop", "", "gain\n", "2x", "a b"])
def test_method_names_must_be_identifiers(name: str) -> None:
    expression = ChainExpression(
        source=SourceCall(function="s", argument="bd"),
        transforms=[MethodCall(name=name, argument=1)],
    )

    with pytest.raises(MalformedPropertiesError):
        expression.render()
