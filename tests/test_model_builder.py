"""Tests for pipelint.model.builder: tree parsing and structural validation."""

from __future__ import annotations

import pytest
from trees import clean_job, clean_step, pipeline_tree

from pipelint.errors import ModelError, ModelErrorKind
from pipelint.model import (
    LockBehavior,
    PoolKind,
    Step,
    StepKind,
    build,
)
from pipelint.model.builder import DEFAULT_NAME

# ---------------------------------------------------------------------------
# TestBuildShapes: accepted tree forms
# ---------------------------------------------------------------------------


class TestBuildShapes:
    """Tests for the stages/jobs/steps forms accepted by build()."""

    def test_full_stages_form(self) -> None:
        tree = {
            "name": "web",
            "stages": [
                {"stage": "Build", "jobs": [clean_job("Compile")]},
                {
                    "stage": "Deploy",
                    "dependsOn": "Build",
                    "condition": "succeeded()",
                    "lockBehavior": "sequential",
                    "jobs": [clean_job("Ship")],
                },
            ],
        }
        pipeline = build(tree)

        assert pipeline.name == "web"
        assert [s.name for s in pipeline.stages] == ["Build", "Deploy"]
        deploy = pipeline.stages[1]
        assert deploy.depends_on == frozenset({"Build"})
        assert deploy.condition == "succeeded()"
        assert deploy.lock_behavior is LockBehavior.SEQUENTIAL
        assert deploy.jobs[0].name == "Ship"

    def test_jobs_shorthand_creates_default_stage(self) -> None:
        pipeline = build({"jobs": [clean_job("A"), clean_job("B")]})
        assert len(pipeline.stages) == 1
        assert pipeline.stages[0].name == DEFAULT_NAME
        assert [j.name for j in pipeline.stages[0].jobs] == ["A", "B"]

    def test_steps_shorthand_creates_default_stage_and_job(self) -> None:
        pipeline = build({"steps": [{"script": "make"}]})
        stage = pipeline.stages[0]
        assert stage.name == DEFAULT_NAME
        assert stage.jobs[0].name == DEFAULT_NAME
        assert stage.jobs[0].steps[0].kind is StepKind.SCRIPT

    def test_empty_tree_gives_empty_pipeline(self) -> None:
        pipeline = build({})
        assert pipeline.stages == ()
        assert pipeline.name == "pipeline"

    def test_deployment_job_collects_strategy_steps(self) -> None:
        job = {
            "deployment": "Release",
            "environment": {"name": "production", "approvals": ["release-managers"]},
            "strategy": {
                "runOnce": {
                    "preDeploy": {"steps": [{"script": "echo pre"}]},
                    "deploy": {"steps": [{"task": "AzureWebApp@1"}]},
                }
            },
        }
        pipeline = build(pipeline_tree(job))
        built = pipeline.stages[0].jobs[0]
        assert built.name == "Release"
        assert built.environment is not None
        assert built.environment.name == "production"
        assert built.environment.approvals == ("release-managers",)
        assert [s.kind for s in built.steps] == [StepKind.SCRIPT, StepKind.TASK]

    def test_templates_are_skipped(self) -> None:
        tree = pipeline_tree(clean_job(steps=[{"template": "steps.yml"}, clean_step()]))
        pipeline = build(tree)
        assert len(pipeline.stages[0].jobs[0].steps) == 1


# ---------------------------------------------------------------------------
# TestBuildSteps
# ---------------------------------------------------------------------------


class TestBuildSteps:
    """Tests for step parsing."""

    def _steps(self, *steps: dict[str, object]) -> tuple[Step, ...]:
        return build(pipeline_tree(clean_job(steps=list(steps)))).stages[0].jobs[0].steps

    def test_task_with_version(self) -> None:
        (step,) = self._steps({"task": "Npm@1", "displayName": "npm"})
        assert step.kind is StepKind.TASK
        assert step.task_name == "Npm"
        assert step.task_version == "1"
        assert step.display_name == "npm"

    def test_task_without_version(self) -> None:
        (step,) = self._steps({"task": "Npm"})
        assert step.task_name == "Npm"
        assert step.task_version is None

    def test_task_with_trailing_at_has_no_version(self) -> None:
        (step,) = self._steps({"task": "Npm@"})
        assert step.task_version is None

    @pytest.mark.parametrize("key", ["script", "bash", "pwsh", "powershell"])
    def test_script_keys(self, key: str) -> None:
        (step,) = self._steps({key: "make test"})
        assert step.kind is StepKind.SCRIPT
        assert step.script == "make test"

    def test_checkout_with_fetch_depth(self) -> None:
        (step,) = self._steps({"checkout": "self", "fetchDepth": 1})
        assert step.kind is StepKind.CHECKOUT
        assert step.checkout == "self"
        assert step.fetch_depth == 1

    def test_task_environment_input(self) -> None:
        (step,) = self._steps({"task": "Deploy@2", "inputs": {"Environment": "Production"}})
        assert step.environment == "Production"

    def test_env_secret_ref_detection(self) -> None:
        tree = pipeline_tree(
            clean_job(
                steps=[
                    {
                        "script": "deploy",
                        "env": {"TOKEN": "$(apiToken)", "MODE": "$(buildMode)", "X": "1"},
                    }
                ]
            ),
            variables=[
                {"name": "apiToken", "secret": True},
                {"name": "buildMode", "value": "release"},
            ],
        )
        (step,) = build(tree).stages[0].jobs[0].steps
        assert step.env["TOKEN"].is_secret_ref is True
        assert step.env["MODE"].is_secret_ref is False
        assert step.env["X"].value == "1"

    def test_unknown_step_is_invalid(self) -> None:
        with pytest.raises(ModelError) as exc_info:
            self._steps({"frobnicate": True})
        assert exc_info.value.kind is ModelErrorKind.INVALID_STRUCTURE
        assert exc_info.value.location == "stages[0].jobs[0].steps[0]"

    def test_env_and_inputs_are_read_only(self) -> None:
        (step,) = self._steps({"task": "Npm@1", "inputs": {"command": "ci"}})
        with pytest.raises(TypeError):
            step.inputs["command"] = "install"  # type: ignore[index]


# ---------------------------------------------------------------------------
# TestBuildJobs
# ---------------------------------------------------------------------------


class TestBuildJobs:
    """Tests for job parsing: pools, timeouts, inheritance."""

    def test_hosted_pool(self) -> None:
        job = build(pipeline_tree(clean_job())).stages[0].jobs[0]
        assert job.pool is not None
        assert job.pool.kind is PoolKind.HOSTED
        assert job.pool.tag == "ubuntu-latest"

    def test_self_hosted_pool_string(self) -> None:
        job = build(pipeline_tree(clean_job(pool="build-agents"))).stages[0].jobs[0]
        assert job.pool is not None
        assert job.pool.kind is PoolKind.SELF_HOSTED
        assert job.pool.tag == "build-agents"

    def test_pool_inherited_from_pipeline(self) -> None:
        job_tree = clean_job()
        del job_tree["pool"]
        tree = pipeline_tree(job_tree, pool={"name": "shared"})
        job = build(tree).stages[0].jobs[0]
        assert job.pool is not None
        assert job.pool.tag == "shared"

    def test_pool_inherited_from_stage(self) -> None:
        job_tree = clean_job()
        del job_tree["pool"]
        tree = {"stages": [{"stage": "S", "pool": "stage-pool", "jobs": [job_tree]}]}
        job = build(tree).stages[0].jobs[0]
        assert job.pool is not None
        assert job.pool.tag == "stage-pool"

    def test_timeout_unset_is_none(self) -> None:
        job_tree = clean_job()
        del job_tree["timeoutInMinutes"]
        job = build(pipeline_tree(job_tree)).stages[0].jobs[0]
        assert job.timeout_in_minutes is None

    def test_negative_timeout_is_invalid(self) -> None:
        with pytest.raises(ModelError) as exc_info:
            build(pipeline_tree(clean_job(timeoutInMinutes=-5)))
        assert exc_info.value.kind is ModelErrorKind.INVALID_STRUCTURE

    def test_boolean_timeout_is_invalid(self) -> None:
        with pytest.raises(ModelError):
            build(pipeline_tree(clean_job(timeoutInMinutes=True)))

    def test_fractional_timeout_is_invalid(self) -> None:
        with pytest.raises(ModelError, match="whole number") as exc_info:
            build(pipeline_tree(clean_job(timeoutInMinutes=1.5)))
        assert exc_info.value.kind is ModelErrorKind.INVALID_STRUCTURE

    def test_whole_float_timeout_is_accepted(self) -> None:
        job = build(pipeline_tree(clean_job(timeoutInMinutes=30.0))).stages[0].jobs[0]
        assert job.timeout_in_minutes == 30

    def test_unnamed_jobs_get_positional_names(self) -> None:
        first = clean_job()
        second = clean_job()
        del first["job"]
        del second["job"]
        jobs = build(pipeline_tree(first, second)).stages[0].jobs
        assert [j.name for j in jobs] == ["Job1", "Job2"]


# ---------------------------------------------------------------------------
# TestBuildPipelineSections
# ---------------------------------------------------------------------------


class TestBuildPipelineSections:
    """Tests for variables, triggers and resources."""

    def test_variables_mapping_form(self) -> None:
        pipeline = build(pipeline_tree(variables={"buildConfiguration": "Release"}))
        assert pipeline.variables[0].name == "buildConfiguration"
        assert pipeline.secret_names() == ()

    def test_variables_list_form_with_groups(self) -> None:
        pipeline = build(
            pipeline_tree(
                variables=[
                    {"name": "apiToken", "secret": True},
                    {"group": "prod-secrets", "secret": True},
                    {"group": "shared-settings"},
                ]
            )
        )
        assert pipeline.secret_names() == ("apiToken", "prod-secrets")
        assert pipeline.variables[1].is_group is True

    def test_trigger_none_is_disabled(self) -> None:
        pipeline = build(pipeline_tree(trigger="none"))
        assert pipeline.triggers[0].kind == "ci"
        assert pipeline.triggers[0].enabled is False

    def test_trigger_forms(self) -> None:
        pipeline = build(
            pipeline_tree(
                trigger=["main"],
                pr={"branches": {"include": ["main", "release/*"]}},
                schedules=[{"cron": "0 3 * * *", "branches": {"include": ["main"]}}],
            )
        )
        kinds = [(t.kind, t.branches) for t in pipeline.triggers]
        assert kinds == [
            ("ci", ("main",)),
            ("pr", ("main", "release/*")),
            ("schedule", ("main",)),
        ]

    def test_environment_resources(self) -> None:
        pipeline = build(
            pipeline_tree(
                resources={
                    "environments": [{"name": "Production", "approvals": ["ops"]}],
                    "repositories": [{"repository": "tools", "type": "git"}],
                }
            )
        )
        env = pipeline.environment_resource("production")
        assert env is not None
        assert env.is_protected is True
        assert [r.kind for r in pipeline.resources] == ["environment", "repository"]

    def test_resource_kinds_use_singular_key(self) -> None:
        pipeline = build(
            pipeline_tree(
                resources={
                    "repositories": [{"repository": "tools", "type": "git"}],
                    "pipelines": [{"pipeline": "upstream", "source": "ci"}],
                    "containers": [{"container": "linux", "image": "ubuntu:22.04"}],
                    "custom": [{"custom": "thing"}],
                }
            )
        )
        assert [(r.kind, r.name) for r in pipeline.resources] == [
            ("repository", "tools"),
            ("pipeline", "upstream"),
            ("container", "linux"),
            ("custom", "thing"),
        ]

    def test_invalid_lock_behavior(self) -> None:
        tree = {"stages": [{"stage": "S", "lockBehavior": "exclusive", "jobs": []}]}
        with pytest.raises(ModelError) as exc_info:
            build(tree)
        assert exc_info.value.kind is ModelErrorKind.INVALID_STRUCTURE

    def test_root_must_be_mapping(self) -> None:
        with pytest.raises(ModelError) as exc_info:
            build(["not", "a", "pipeline"])
        assert exc_info.value.location == "<root>"


# ---------------------------------------------------------------------------
# TestStructuralInvariants
# ---------------------------------------------------------------------------


class TestStructuralInvariants:
    """Tests for duplicate names, unresolved references and cycles."""

    def test_duplicate_stage_names(self) -> None:
        tree = {
            "stages": [
                {"stage": "Build", "jobs": [clean_job()]},
                {"stage": "Build", "jobs": [clean_job()]},
            ]
        }
        with pytest.raises(ModelError) as exc_info:
            build(tree)
        err = exc_info.value
        assert err.kind is ModelErrorKind.DUPLICATE_NAME
        assert err.location == "stages[1]"
        assert "Build" in err.message

    def test_duplicate_job_names(self) -> None:
        with pytest.raises(ModelError) as exc_info:
            build(pipeline_tree(clean_job("A"), clean_job("A")))
        assert exc_info.value.kind is ModelErrorKind.DUPLICATE_NAME
        assert exc_info.value.location == "stages[0].jobs[1]"

    def test_same_job_name_in_different_stages_is_allowed(self) -> None:
        tree = {
            "stages": [
                {"stage": "A", "jobs": [clean_job("Run")]},
                {"stage": "B", "jobs": [clean_job("Run")]},
            ]
        }
        assert len(build(tree).stages) == 2

    def test_unresolved_stage_dependency(self) -> None:
        tree = {"stages": [{"stage": "Deploy", "dependsOn": ["Build"], "jobs": []}]}
        with pytest.raises(ModelError) as exc_info:
            build(tree)
        err = exc_info.value
        assert err.kind is ModelErrorKind.UNRESOLVED_REFERENCE
        assert "Build" in err.message

    def test_unresolved_job_dependency(self) -> None:
        with pytest.raises(ModelError) as exc_info:
            build(pipeline_tree(clean_job("B", dependsOn="Missing")))
        assert exc_info.value.kind is ModelErrorKind.UNRESOLVED_REFERENCE
        assert exc_info.value.location == "stages[0].jobs[0].dependsOn"

    def test_stage_cycle_names_both_stages(self) -> None:
        tree = {
            "stages": [
                {"stage": "A", "dependsOn": "B", "jobs": []},
                {"stage": "B", "dependsOn": "A", "jobs": []},
            ]
        }
        with pytest.raises(ModelError) as exc_info:
            build(tree)
        err = exc_info.value
        assert err.kind is ModelErrorKind.CYCLE_DETECTED
        assert set(err.cycle) == {"A", "B"}
        assert "A -> B -> A" in err.message

    def test_three_stage_cycle_behind_acyclic_prefix(self) -> None:
        tree = {
            "stages": [
                {"stage": "Root", "jobs": []},
                {"stage": "X", "dependsOn": ["Root", "Z"], "jobs": []},
                {"stage": "Y", "dependsOn": "X", "jobs": []},
                {"stage": "Z", "dependsOn": "Y", "jobs": []},
            ]
        }
        with pytest.raises(ModelError) as exc_info:
            build(tree)
        assert set(exc_info.value.cycle) == {"X", "Y", "Z"}

    def test_self_dependency_is_a_cycle(self) -> None:
        tree = {"stages": [{"stage": "A", "dependsOn": "A", "jobs": []}]}
        with pytest.raises(ModelError) as exc_info:
            build(tree)
        assert exc_info.value.cycle == ("A",)

    def test_job_cycle(self) -> None:
        with pytest.raises(ModelError) as exc_info:
            build(pipeline_tree(clean_job("A", dependsOn="B"), clean_job("B", dependsOn="A")))
        err = exc_info.value
        assert err.kind is ModelErrorKind.CYCLE_DETECTED
        assert err.location == "stages[0].jobs"

    def test_diamond_dependencies_are_acyclic(self) -> None:
        tree = {
            "stages": [
                {"stage": "A", "jobs": []},
                {"stage": "B", "dependsOn": "A", "jobs": []},
                {"stage": "C", "dependsOn": "A", "jobs": []},
                {"stage": "D", "dependsOn": ["B", "C"], "jobs": []},
            ]
        }
        pipeline = build(tree)
        assert pipeline.stages[3].depends_on == frozenset({"B", "C"})

    def test_model_error_is_a_value_error(self) -> None:
        with pytest.raises(ValueError, match="DuplicateName"):
            build(pipeline_tree(clean_job("A"), clean_job("A")))
