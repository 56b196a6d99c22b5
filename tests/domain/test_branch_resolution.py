from __future__ import annotations

from domain.models import Step
from domain.services.branch_resolution import (
    BranchLabels,
    ResolvedEdge,
    branch_summaries,
    resolve_branch_target,
    resolve_edges,
)
from tests.helpers.process_fixtures import action, decision, finish, start


def _branching_steps() -> list[Step]:
    return [
        start(),
        decision("A", "Approved?", yes_target_id="C"),
        action("B", "Rework"),
        action("C", "Publish"),
        finish(),
    ]


def test_yes_override_with_no_falling_back_to_next_step() -> None:
    edges = resolve_edges(_branching_steps())

    assert edges == [
        ResolvedEdge("start", "A"),
        ResolvedEdge("A", "C", branch="yes"),
        ResolvedEdge("A", "B", branch="no", is_fallback=True),
        ResolvedEdge("B", "C"),
        ResolvedEdge("C", "finish"),
    ]


def test_decision_without_overrides_keeps_single_sequential_edge() -> None:
    steps = [start(), decision("A", "Check"), action("B"), finish()]

    assert resolve_edges(steps) == [
        ResolvedEdge("start", "A"),
        ResolvedEdge("A", "B"),
        ResolvedEdge("B", "finish"),
    ]


def test_unknown_and_self_targets_are_ignored() -> None:
    steps = [
        start(),
        decision("A", "Check", yes_target_id="missing", no_target_id="A"),
        action("B"),
        finish(),
    ]

    assert resolve_edges(steps) == [
        ResolvedEdge("start", "A"),
        ResolvedEdge("A", "B"),
        ResolvedEdge("B", "finish"),
    ]


def test_every_step_but_the_last_has_an_outgoing_edge() -> None:
    steps = _branching_steps()
    sources = {edge.source_id for edge in resolve_edges(steps)}

    assert sources == {step.id for step in steps[:-1]}


def test_resolve_branch_target_uses_fallback() -> None:
    steps = _branching_steps()

    assert resolve_branch_target(steps, "A", "yes") == "C"
    assert resolve_branch_target(steps, "A", "no") == "B"
    assert resolve_branch_target(steps, "finish", "yes") is None


def test_branch_summaries_describe_both_branches() -> None:
    steps = _branching_steps()

    assert branch_summaries(steps[1], steps) == ["Yes → Publish", "No → Rework"]
    assert branch_summaries(steps[2], steps) == []


def test_branch_summaries_use_custom_labels_and_placeholders() -> None:
    steps = [start(), decision("A", "Check", no_target_id="B"), action("B", " "), finish()]
    labels = BranchLabels(yes="Ja", no="Nein", arrow="->")

    assert branch_summaries(steps[1], steps, labels) == ["Ja -> Action", "Nein -> Action"]
