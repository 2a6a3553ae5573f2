"""Static story graph validation utilities."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from cyoa.core.errors import FormatError, RangeError
from cyoa.core.types import EFFECT_OPERATIONS, EFFECT_TYPES
from cyoa.domain.conditions import Invalid
from cyoa.domain.defs import RollRequirementDef, StoryDef, StoryNodeDef
from cyoa.services.dice_roller import parse_formula

Severity = str


@dataclass(frozen=True, slots=True)
class Issue:
    severity: Severity
    code: str
    message: str
    context: dict[str, str]


def format_issue(issue: Issue) -> str:
    context = " ".join(f"{key}={value}" for key, value in issue.context.items())
    suffix = f" ({context})" if context else ""
    return f"[{issue.severity}] {issue.code}: {issue.message}{suffix}"


def has_errors(issues: list[Issue]) -> bool:
    return any(issue.severity == "ERROR" for issue in issues)


def validate_story_graph(story: StoryDef) -> list[Issue]:
    """Check a story's node graph and authored content for mistakes."""
    issues: list[Issue] = []
    nodes = story.nodes
    if story.start_node_id not in nodes:
        issues.append(
            Issue(
                severity="ERROR",
                code="MISSING_START_NODE",
                message="Story start references missing node.",
                context={"story_id": story.id, "referenced_id": story.start_node_id},
            )
        )

    for node_id, node in nodes.items():
        _validate_node_references(node_id, node, nodes, issues)
        _validate_node_content(node_id, node, issues)

    _validate_reachability(story, issues)
    return issues


def _validate_node_references(
    node_id: str, node: StoryNodeDef, nodes: Mapping[str, StoryNodeDef], issues: list[Issue]
) -> None:
    for index, choice in enumerate(node.choices):
        if choice.target_node_id not in nodes:
            issues.append(
                Issue(
                    severity="ERROR",
                    code="MISSING_NODE_REF",
                    message="Choice references missing node.",
                    context={
                        "node_id": node_id,
                        "field_path": f"choices[{index}].target",
                        "referenced_id": choice.target_node_id,
                    },
                )
            )
    if not node.choices and not node.is_terminal:
        issues.append(
            Issue(
                severity="WARN",
                code="DEAD_END",
                message="Node has no choices but is not marked terminal.",
                context={"node_id": node_id},
            )
        )


def _validate_node_content(node_id: str, node: StoryNodeDef, issues: list[Issue]) -> None:
    for index, requirement in enumerate(node.dice_checks):
        _validate_roll_requirement(node_id, requirement, f"dice_checks[{index}]", issues)
    for choice_index, choice in enumerate(node.choices):
        choice_path = f"choices[{choice_index}]"
        for index, condition in enumerate(choice.conditions):
            if isinstance(condition.expression, Invalid):
                issues.append(
                    Issue(
                        severity="ERROR",
                        code="INVALID_CONDITION",
                        message=f"Condition cannot be parsed and will never pass: {condition.expression.reason}",
                        context={"node_id": node_id, "field_path": f"{choice_path}.conditions[{index}]"},
                    )
                )
        for index, effect in enumerate(choice.effects):
            effect_path = f"{choice_path}.effects[{index}]"
            if effect.type not in EFFECT_TYPES:
                issues.append(
                    Issue(
                        severity="WARN",
                        code="UNKNOWN_EFFECT_TYPE",
                        message="Effect type is not recognized by runtime and will be ignored.",
                        context={"node_id": node_id, "field_path": effect_path},
                    )
                )
            elif effect.operation not in EFFECT_OPERATIONS:
                issues.append(
                    Issue(
                        severity="ERROR",
                        code="UNKNOWN_EFFECT_OPERATION",
                        message="Effect operation is not supported and will be skipped.",
                        context={"node_id": node_id, "field_path": f"{effect_path}.operation"},
                    )
                )
        for index, requirement in enumerate(choice.roll_requirements):
            _validate_roll_requirement(node_id, requirement, f"{choice_path}.roll_requirements[{index}]", issues)


def _validate_roll_requirement(
    node_id: str, requirement: RollRequirementDef, field_path: str, issues: list[Issue]
) -> None:
    if requirement.formula is None:
        return
    try:
        parse_formula(requirement.formula)
    except (FormatError, RangeError) as exc:
        issues.append(
            Issue(
                severity="ERROR",
                code="INVALID_DICE_FORMULA",
                message=str(exc),
                context={"node_id": node_id, "field_path": f"{field_path}.formula"},
            )
        )


def _validate_reachability(story: StoryDef, issues: list[Issue]) -> None:
    node_ids = set(story.nodes.keys())
    reachable: set[str] = set()
    stack: list[str] = [story.start_node_id] if story.start_node_id in node_ids else []
    while stack:
        node_id = stack.pop()
        if node_id in reachable:
            continue
        reachable.add(node_id)
        for choice in story.nodes[node_id].choices:
            if choice.target_node_id in node_ids:
                stack.append(choice.target_node_id)
    for node_id in sorted(node_ids - reachable):
        issues.append(
            Issue(
                severity="WARN",
                code="UNREACHABLE_NODE",
                message="Node is unreachable from the story start.",
                context={"node_id": node_id},
            )
        )
