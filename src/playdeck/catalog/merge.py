"""Merge explicit catalog parameters with discovered role variables.

Precedence:
    - An explicit parameter keeps every field it set.  ``label``,
      ``description`` and ``default`` are filled from the same-named role
      variable only where the catalog left them unset.  ``type`` and
      ``required`` always come from the catalog.
    - A role variable with no explicit counterpart becomes an implicit,
      optional ``text`` parameter labelled with its own label or name.

Explicit parameters come first in declared order, then implicit ones in
discovery order.
"""

from __future__ import annotations

from collections.abc import Sequence

from playdeck.catalog.models import DemoDefinition, DiscoveredVariable, Parameter, ParameterType


def merge_parameters(
    explicit: Sequence[Parameter],
    discovered: Sequence[DiscoveredVariable],
) -> list[Parameter]:
    """Return the effective parameter list for a definition."""
    by_name = {variable.name: variable for variable in discovered}
    merged: list[Parameter] = []

    for parameter in explicit:
        variable = by_name.get(parameter.name)
        if variable is None:
            merged.append(parameter.model_copy(deep=True))
            continue
        updates = {}
        if parameter.label is None and variable.label is not None:
            updates["label"] = variable.label
        if parameter.description is None and variable.description is not None:
            updates["description"] = variable.description
        if parameter.default is None and variable.default_value is not None:
            updates["default"] = variable.default_value
        merged.append(parameter.model_copy(update=updates, deep=True))

    declared = {parameter.name for parameter in explicit}
    for variable in discovered:
        if variable.name in declared:
            continue
        merged.append(
            Parameter(
                name=variable.name,
                label=variable.label or variable.name,
                description=variable.description,
                type=ParameterType.TEXT,
                required=False,
                default=variable.default_value,
            )
        )
    return merged


def enrich_definition(
    definition: DemoDefinition,
    discovered: Sequence[DiscoveredVariable],
) -> DemoDefinition:
    """Return a copy of *definition* with merged parameters."""
    if not discovered:
        return definition
    return definition.model_copy(
        update={"parameters": merge_parameters(definition.parameters, discovered)}
    )


__all__ = ["merge_parameters", "enrich_definition"]
