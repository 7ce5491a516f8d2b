from dataclasses import replace

import pytest

from ffigen import (
    Callback, DependencyGraph, FunctionDecl, Named, OpaqueType, Param, Pointer, StructDecl,
    TypeAlias, UnbreakableCycle, build_model, order_model,
)
from ffigen.types import Field, PRIMITIVES, VOID

I32 = PRIMITIVES["i32"]


def model(*decls):
    decls = [replace(d, index=i) for i, d in enumerate(decls)]
    build = build_model(decls)
    assert build.errors == []
    return build.model


def names(ordering):
    return [d.name for d in ordering]


def test_dependencies_come_first():
    m = model(
        StructDecl("Outer", (Field("inner", Named("Inner")),)),
        StructDecl("Inner", (Field("value", I32),)),
    )
    ordering = order_model(m)
    assert names(ordering) == ["Inner", "Outer"]
    assert ordering.forward == frozenset()


def test_source_order_is_kept_between_independent_declarations():
    m = model(
        FunctionDecl("zeta"),
        StructDecl("Beta", (Field("x", I32),)),
        FunctionDecl("alpha"),
    )
    assert names(order_model(m)) == ["zeta", "Beta", "alpha"]


def test_edges_record_whether_every_use_is_by_reference():
    m = model(
        StructDecl("Target", (Field("x", I32),)),
        StructDecl("ByPointer", (Field("t", Pointer(Named("Target"))),)),
        StructDecl("Mixed", (Field("a", Pointer(Named("Target"))), Field("b", Named("Target")))),
        FunctionDecl("register", (Param("cb", Callback((Named("Target"),), VOID)),)),
    )
    graph = DependencyGraph(m)
    assert list(graph.graph.successors(1)) == [0]
    assert graph.graph.edges[1, 0]["by_reference"] is True
    assert graph.graph.edges[2, 0]["by_reference"] is False
    assert graph.graph.edges[3, 0]["by_reference"] is True
    assert graph.dependents(0) == 3


def test_self_reference_becomes_a_forward_reference():
    m = model(StructDecl("Node", (Field("value", I32), Field("next", Pointer(Named("Node"), True)))))
    ordering = order_model(m)
    assert names(ordering) == ["Node"]
    assert ordering.is_forward(0, 0)
    assert ordering.forward_targets(0) == [0]


def test_cycle_through_an_alias_downgrades_the_pointer_edge():
    m = model(
        StructDecl("Node", (Field("value", I32), Field("next", Pointer(Named("NodeRef"), True)))),
        TypeAlias("NodeRef", Named("Node")),
    )
    ordering = order_model(m)
    assert ordering.forward == frozenset({(0, 1)})
    assert names(ordering) == ["Node", "NodeRef"]


def test_mutual_references_downgrade_the_later_target():
    m = model(
        StructDecl("A", (Field("b", Pointer(Named("B"))),)),
        StructDecl("B", (Field("a", Pointer(Named("A"))),)),
    )
    ordering = order_model(m)
    assert ordering.forward == frozenset({(0, 1)})
    assert names(ordering) == ["A", "B"]


def test_the_target_with_fewer_dependents_is_downgraded():
    m = model(
        StructDecl("A", (Field("b", Pointer(Named("B"))),)),
        StructDecl("B", (Field("a", Pointer(Named("A"))),)),
        FunctionDecl("use_b", (Param("b", Pointer(Named("B"))),)),
    )
    ordering = order_model(m)
    # B has two dependents, A only one
    assert ordering.forward == frozenset({(1, 0)})
    assert names(ordering).index("B") < names(ordering).index("A")


def test_by_value_cycle_is_unbreakable():
    m = model(
        StructDecl("A", (Field("b", Named("B")),)),
        StructDecl("B", (Field("a", Named("A")),)),
    )
    with pytest.raises(UnbreakableCycle) as info:
        order_model(m)
    assert info.value.members == ("A", "B", "A")


def test_aliases_participate_in_ordering():
    m = model(
        FunctionDecl("open", returns=Pointer(Named("Handle"), True)),
        TypeAlias("Handle", Named("Context")),
        OpaqueType("Context"),
    )
    assert names(order_model(m)) == ["Context", "Handle", "open"]


def test_ordering_is_deterministic():
    decls = (
        StructDecl("A", (Field("b", Pointer(Named("B"))), Field("c", Named("C")))),
        StructDecl("B", (Field("a", Pointer(Named("A"))),)),
        StructDecl("C", (Field("x", I32),)),
    )
    first = order_model(model(*decls))
    second = order_model(model(*decls))
    assert first.order == second.order
    assert first.forward == second.forward
