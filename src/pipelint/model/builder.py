# pipelint:domain=model
"""Build a validated :class:`Pipeline` from a parsed configuration tree.

The tree is the generic structure a YAML/JSON parser produces (mappings,
sequences and scalars).  :func:`build` either returns a complete pipeline or
raises :class:`ModelError`; it never hands back a partially-built model.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from pipelint.errors import ModelError, ModelErrorKind
from pipelint.model.document import (
    EnvironmentRef,
    EnvValue,
    Job,
    LockBehavior,
    Pipeline,
    Pool,
    PoolKind,
    ResourceRef,
    Stage,
    Step,
    StepKind,
    Trigger,
    VariableRef,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_NAME = "__default"
SCRIPT_KEYS: tuple[str, ...] = ("script", "bash", "pwsh", "powershell")
DEPLOYMENT_HOOKS: tuple[str, ...] = ("preDeploy", "deploy", "routeTraffic", "postRouteTraffic")
RESOURCE_KINDS: dict[str, str] = {
    "builds": "build",
    "containers": "container",
    "environments": "environment",
    "packages": "package",
    "pipelines": "pipeline",
    "repositories": "repository",
    "webhooks": "webhook",
}

_MACRO_RE = re.compile(r"^\s*\$\(\s*([A-Za-z_][\w.]*)\s*\)\s*$")
_LOCK_BEHAVIORS = {lb.value.lower(): lb for lb in LockBehavior}


# ---------------------------------------------------------------------------
# Small helpers
# ---------------------------------------------------------------------------


def _invalid(location: str, message: str) -> ModelError:
    return ModelError(ModelErrorKind.INVALID_STRUCTURE, location, message)


def _as_mapping(value: object, location: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        msg = f"expected a mapping, got {type(value).__name__}"
        raise _invalid(location, msg)
    return value


def _as_list(value: object, location: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        msg = f"expected a list, got {type(value).__name__}"
        raise _invalid(location, msg)
    return value


def _string_list(value: object, location: str) -> tuple[str, ...]:
    """Normalize a scalar-or-list field to a tuple of strings."""
    if value is None:
        return ()
    if isinstance(value, (str, int, float)):
        return (str(value),)
    return tuple(str(item) for item in _as_list(value, location))


def _is_template(entry: object) -> bool:
    return isinstance(entry, Mapping) and "template" in entry


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _non_negative_int(value: object, location: str, field_name: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        msg = f"'{field_name}' must be an integer, got a boolean"
        raise _invalid(location, msg)
    if isinstance(value, float) and not value.is_integer():
        msg = f"'{field_name}' must be a whole number, got {value!r}"
        raise _invalid(location, msg)
    try:
        number = int(value)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        msg = f"'{field_name}' must be an integer, got {value!r}"
        raise _invalid(location, msg) from None
    if number < 0:
        msg = f"'{field_name}' must be >= 0, got {number}"
        raise _invalid(location, msg)
    return number


# ---------------------------------------------------------------------------
# Pipeline-level sections
# ---------------------------------------------------------------------------


def _parse_variables(raw: object) -> tuple[VariableRef, ...]:
    """Parse ``variables:`` in either mapping or list form."""
    if raw is None:
        return ()
    if isinstance(raw, Mapping):
        return tuple(VariableRef(name=str(name)) for name in raw)

    variables: list[VariableRef] = []
    for idx, entry in enumerate(_as_list(raw, "variables")):
        location = f"variables[{idx}]"
        if _is_template(entry):
            continue
        data = _as_mapping(entry, location)
        secret = bool(data.get("secret", data.get("isSecret", False)))
        if "group" in data:
            variables.append(VariableRef(name=str(data["group"]), is_secret=secret, is_group=True))
        elif "name" in data:
            variables.append(VariableRef(name=str(data["name"]), is_secret=secret))
        else:
            msg = "variable entry needs a 'name' or 'group'"
            raise _invalid(location, msg)
    return tuple(variables)


def _parse_trigger(kind: str, raw: object) -> Trigger | None:
    if raw is None:
        return None
    if isinstance(raw, str):
        if raw.strip().lower() == "none":
            return Trigger(kind=kind, enabled=False)
        return Trigger(kind=kind, branches=(raw,))
    if isinstance(raw, list):
        return Trigger(kind=kind, branches=tuple(str(b) for b in raw))
    data = _as_mapping(raw, kind)
    branches = data.get("branches")
    include: object = branches.get("include") if isinstance(branches, Mapping) else branches
    return Trigger(kind=kind, branches=_string_list(include, f"{kind}.branches"))


def _parse_triggers(tree: Mapping[str, Any]) -> tuple[Trigger, ...]:
    triggers: list[Trigger] = []
    for key, kind in (("trigger", "ci"), ("pr", "pr")):
        trigger = _parse_trigger(kind, tree.get(key))
        if trigger is not None:
            triggers.append(trigger)
    for idx, entry in enumerate(_as_list(tree.get("schedules"), "schedules")):
        data = _as_mapping(entry, f"schedules[{idx}]")
        trigger = _parse_trigger("schedule", {"branches": data.get("branches")})
        if trigger is not None:
            triggers.append(trigger)
    return tuple(triggers)


def _parse_resources(raw: object) -> tuple[ResourceRef, ...]:
    """Parse ``resources:``; each list key becomes a resource kind (``environments`` -> environment)."""
    if raw is None:
        return ()
    resources: list[ResourceRef] = []
    for section, entries in _as_mapping(raw, "resources").items():
        kind = RESOURCE_KINDS.get(section, section)
        for idx, entry in enumerate(_as_list(entries, f"resources.{section}")):
            location = f"resources.{section}[{idx}]"
            if isinstance(entry, str):
                resources.append(ResourceRef(kind=kind, name=entry))
                continue
            data = _as_mapping(entry, location)
            name = data.get(kind, data.get("name"))
            if name is None:
                msg = f"resource needs a '{kind}' or 'name' key"
                raise _invalid(location, msg)
            resources.append(
                ResourceRef(
                    kind=kind,
                    name=str(name),
                    approvals=_string_list(data.get("approvals"), f"{location}.approvals"),
                    checks=_string_list(data.get("checks"), f"{location}.checks"),
                )
            )
    return tuple(resources)


def _parse_pool(raw: object, location: str) -> Pool | None:
    """``pool: name`` is a self-hosted pool; ``vmImage`` selects a hosted agent."""
    if raw is None:
        return None
    if isinstance(raw, str):
        return Pool(kind=PoolKind.SELF_HOSTED, tag=raw)
    data = _as_mapping(raw, location)
    if "vmImage" in data:
        return Pool(kind=PoolKind.HOSTED, tag=str(data["vmImage"]))
    if "name" in data:
        return Pool(kind=PoolKind.SELF_HOSTED, tag=str(data["name"]))
    msg = "pool needs a 'vmImage' or 'name'"
    raise _invalid(location, msg)


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------


def _parse_env(raw: object, location: str, secrets: frozenset[str]) -> Mapping[str, EnvValue]:
    env: dict[str, EnvValue] = {}
    for key, value in _as_mapping(raw, location).items():
        text = "" if value is None else str(value)
        match = _MACRO_RE.match(text)
        is_secret_ref = match is not None and match.group(1).lower() in secrets
        env[str(key)] = EnvValue(value=text, is_secret_ref=is_secret_ref)
    return MappingProxyType(env)


def _parse_step(raw: object, location: str, secrets: frozenset[str]) -> Step:
    data = _as_mapping(raw, location)

    env = _parse_env(data["env"], f"{location}.env", secrets) if data.get("env") else None
    inputs_raw = data.get("inputs")
    inputs = (
        MappingProxyType(dict(_as_mapping(inputs_raw, f"{location}.inputs")))
        if inputs_raw
        else None
    )
    common: dict[str, Any] = {"display_name": _optional_str(data.get("displayName"))}
    if env is not None:
        common["env"] = env
    if inputs is not None:
        common["inputs"] = inputs

    if "task" in data:
        reference = str(data["task"]).strip()
        name, _, version = reference.partition("@")
        if not name:
            msg = "task reference is empty"
            raise _invalid(location, msg)
        environment = None
        if inputs is not None:
            for key, value in inputs.items():
                if key.lower() == "environment" and value is not None:
                    environment = str(value)
                    break
        return Step(
            kind=StepKind.TASK,
            task_name=name.strip(),
            task_version=version.strip() or None,
            environment=environment,
            **common,
        )

    for key in SCRIPT_KEYS:
        if key in data:
            return Step(kind=StepKind.SCRIPT, script=str(data[key] or ""), **common)

    if "checkout" in data:
        return Step(
            kind=StepKind.CHECKOUT,
            checkout=str(data["checkout"]),
            fetch_depth=_non_negative_int(data.get("fetchDepth"), location, "fetchDepth"),
            **common,
        )

    expected = ", ".join(repr(k) for k in ("task", *SCRIPT_KEYS, "checkout"))
    msg = f"unrecognised step, expected one of {expected}"
    raise _invalid(location, msg)


def _parse_steps(raw: object, location: str, secrets: frozenset[str]) -> tuple[Step, ...]:
    steps: list[Step] = []
    for idx, entry in enumerate(_as_list(raw, location)):
        if _is_template(entry):
            logger.debug("Skipping step template at %s[%d]", location, idx)
            continue
        steps.append(_parse_step(entry, f"{location}[{idx}]", secrets))
    return tuple(steps)


def _deployment_steps(strategy: object, location: str, secrets: frozenset[str]) -> tuple[Step, ...]:
    """Collect lifecycle-hook steps of a deployment job strategy, in hook order."""
    steps: list[Step] = []
    for variant, body in _as_mapping(strategy, location).items():
        if not isinstance(body, Mapping):
            continue
        for hook in DEPLOYMENT_HOOKS:
            hook_body = body.get(hook)
            if isinstance(hook_body, Mapping):
                steps.extend(
                    _parse_steps(
                        hook_body.get("steps"), f"{location}.{variant}.{hook}.steps", secrets
                    )
                )
    return tuple(steps)


# ---------------------------------------------------------------------------
# Jobs and stages
# ---------------------------------------------------------------------------


def _parse_environment(raw: object, location: str) -> EnvironmentRef | None:
    if raw is None:
        return None
    if isinstance(raw, str):
        return EnvironmentRef(name=raw)
    data = _as_mapping(raw, location)
    if "name" not in data:
        msg = "environment needs a 'name'"
        raise _invalid(location, msg)
    return EnvironmentRef(
        name=str(data["name"]),
        approvals=_string_list(data.get("approvals"), f"{location}.approvals"),
    )


def _parse_job(
    raw: object, idx: int, location: str, secrets: frozenset[str], inherited_pool: Pool | None
) -> Job:
    data = _as_mapping(raw, location)
    name = data.get("job", data.get("deployment"))
    name_str = str(name) if name is not None else f"Job{idx + 1}"

    if "steps" in data:
        steps = _parse_steps(data.get("steps"), f"{location}.steps", secrets)
    elif "strategy" in data:
        steps = _deployment_steps(data["strategy"], f"{location}.strategy", secrets)
    else:
        steps = ()

    pool = _parse_pool(data.get("pool"), f"{location}.pool") or inherited_pool
    return Job(
        name=name_str,
        steps=steps,
        pool=pool,
        depends_on=frozenset(_string_list(data.get("dependsOn"), f"{location}.dependsOn")),
        timeout_in_minutes=_non_negative_int(
            data.get("timeoutInMinutes"), location, "timeoutInMinutes"
        ),
        environment=_parse_environment(data.get("environment"), f"{location}.environment"),
        approvals=_string_list(data.get("approvals"), f"{location}.approvals"),
    )


def _parse_lock_behavior(raw: object, location: str) -> LockBehavior:
    if raw is None:
        return LockBehavior.NONE
    lock = _LOCK_BEHAVIORS.get(str(raw).lower())
    if lock is None:
        msg = (
            f"invalid lockBehavior {raw!r}, "
            f"must be one of {sorted(lb.value for lb in LockBehavior)}"
        )
        raise _invalid(location, msg)
    return lock


def _parse_stage(
    raw: object, location: str, secrets: frozenset[str], inherited_pool: Pool | None
) -> Stage:
    data = _as_mapping(raw, location)
    name = _optional_str(data.get("stage"))
    if name is None:
        msg = "stage is missing its 'stage' name"
        raise _invalid(location, msg)

    stage_pool = _parse_pool(data.get("pool"), f"{location}.pool") or inherited_pool
    jobs: list[Job] = []
    seen: dict[str, int] = {}
    for idx, entry in enumerate(_as_list(data.get("jobs"), f"{location}.jobs")):
        job_location = f"{location}.jobs[{idx}]"
        if _is_template(entry):
            logger.debug("Skipping job template at %s", job_location)
            continue
        job = _parse_job(entry, idx, job_location, secrets, stage_pool)
        if job.name in seen:
            msg = f"job '{job.name}' is already defined at {location}.jobs[{seen[job.name]}]"
            raise ModelError(ModelErrorKind.DUPLICATE_NAME, job_location, msg)
        seen[job.name] = idx
        jobs.append(job)

    _check_dependencies(
        [(job.name, job.depends_on) for job in jobs], f"{location}.jobs", "job"
    )

    return Stage(
        name=name,
        jobs=tuple(jobs),
        depends_on=frozenset(_string_list(data.get("dependsOn"), f"{location}.dependsOn")),
        condition=_optional_str(data.get("condition")),
        lock_behavior=_parse_lock_behavior(data.get("lockBehavior"), location),
        approvals=_string_list(data.get("approvals"), f"{location}.approvals"),
    )


# ---------------------------------------------------------------------------
# Dependency validation
# ---------------------------------------------------------------------------


def _find_cycle(remaining: list[str], deps: Mapping[str, frozenset[str]]) -> list[str]:
    """Walk unresolved nodes until one repeats and return the cycle it closes."""
    remaining_set = set(remaining)
    path: list[str] = []
    current = remaining[0]
    while current not in path:
        path.append(current)
        current = min(d for d in deps[current] if d in remaining_set)
    return path[path.index(current):]


def _check_dependencies(
    nodes: list[tuple[str, frozenset[str]]], location: str, noun: str
) -> None:
    """Verify that every dependency resolves and that the graph is acyclic.

    Uses Kahn's algorithm: nodes left over once no more can be released
    are on (or behind) a cycle, and one concrete cycle is extracted from them.
    """
    names = [name for name, _ in nodes]
    deps = dict(nodes)
    for idx, (name, depends_on) in enumerate(nodes):
        for target in sorted(depends_on):
            if target not in deps:
                msg = f"{noun} '{name}' depends on unknown {noun} '{target}'"
                raise ModelError(
                    ModelErrorKind.UNRESOLVED_REFERENCE, f"{location}[{idx}].dependsOn", msg
                )

    pending = {name: len(deps[name]) for name in names}
    dependents: dict[str, list[str]] = {name: [] for name in names}
    for name in names:
        for target in deps[name]:
            dependents[target].append(name)

    ready = [name for name in names if pending[name] == 0]
    released = 0
    while ready:
        current = ready.pop()
        released += 1
        for follower in dependents[current]:
            pending[follower] -= 1
            if pending[follower] == 0:
                ready.append(follower)

    if released == len(names):
        return

    remaining = [name for name in names if pending[name] > 0]
    cycle = _find_cycle(remaining, deps)
    display = " -> ".join([*cycle, cycle[0]])
    msg = f"dependency cycle between {noun}s: {display}"
    raise ModelError(ModelErrorKind.CYCLE_DETECTED, location, msg, cycle=tuple(cycle))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def build(tree: object) -> Pipeline:
    """Build a :class:`Pipeline` from a parsed configuration tree.

    Accepts the full ``stages:`` form as well as the ``jobs:``-only and
    ``steps:``-only shorthands, which produce an implicit stage (and job)
    named ``__default``.

    Raises
    ------
    ModelError
        On duplicate stage/job names, unresolved ``dependsOn`` targets,
        dependency cycles, or a malformed tree.
    """
    root = _as_mapping(tree, "<root>")

    variables = _parse_variables(root.get("variables"))
    secrets = frozenset(v.name.lower() for v in variables if v.is_secret)
    pipeline_pool = _parse_pool(root.get("pool"), "pool")

    if "stages" in root:
        raw_stages = _as_list(root.get("stages"), "stages")
    elif "jobs" in root:
        raw_stages = [{"stage": DEFAULT_NAME, "jobs": root.get("jobs")}]
    elif "steps" in root:
        raw_stages = [
            {"stage": DEFAULT_NAME, "jobs": [{"job": DEFAULT_NAME, "steps": root.get("steps")}]}
        ]
    else:
        raw_stages = []

    stages: list[Stage] = []
    seen: dict[str, int] = {}
    for idx, entry in enumerate(raw_stages):
        location = f"stages[{idx}]"
        if _is_template(entry):
            logger.debug("Skipping stage template at %s", location)
            continue
        stage = _parse_stage(entry, location, secrets, pipeline_pool)
        if stage.name in seen:
            msg = f"stage '{stage.name}' is already defined at stages[{seen[stage.name]}]"
            raise ModelError(ModelErrorKind.DUPLICATE_NAME, location, msg)
        seen[stage.name] = idx
        stages.append(stage)

    _check_dependencies([(s.name, s.depends_on) for s in stages], "stages", "stage")

    pipeline = Pipeline(
        name=str(root.get("name") or "pipeline"),
        stages=tuple(stages),
        triggers=_parse_triggers(root),
        variables=variables,
        resources=_parse_resources(root.get("resources")),
    )
    logger.debug(
        "Built pipeline %r: %d stages, %d jobs",
        pipeline.name,
        len(pipeline.stages),
        sum(len(s.jobs) for s in pipeline.stages),
    )
    return pipeline
