# pipelint:domain=rules
"""Security rules: keep secret variables out of logs and out of literal env values."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from pipelint.rules.base import BaseRule, Category, Severity, iter_steps

if TYPE_CHECKING:
    from pipelint.engine.overlay import Overlay
    from pipelint.model.document import Pipeline, Step
    from pipelint.rules.base import Finding

# Command verbs that write their arguments to the build log.
_ECHO_VERB_RE = re.compile(
    r"(?<![\w-])(echo|print|printf|write-host|write-output|console\.log|puts|cat)(?![\w-])",
    re.IGNORECASE,
)
# Task inputs that hold inline script bodies (Bash@3, PowerShell@2, ...).
INLINE_SCRIPT_INPUTS: tuple[str, ...] = ("script", "inlineScript", "arguments")

_SEPARATORS_RE = re.compile(r"[\s_.\-]+")


def _normalize(name: str) -> str:
    """Lowercase and drop separators so ``API_TOKEN`` matches ``apiToken``."""
    return _SEPARATORS_RE.sub("", name).lower()


def script_texts(step: Step) -> list[str]:
    """Every chunk of shell text a step runs: its script and inline-script inputs."""
    texts: list[str] = []
    if step.script:
        texts.append(step.script)
    for name in INLINE_SCRIPT_INPUTS:
        value = step.input_value(name)
        if isinstance(value, str) and value:
            texts.append(value)
    return texts


class SecretNotEchoed(BaseRule):
    id = "SecretNotEchoed"
    category = Category.SECURITY
    default_severity = Severity.ERROR
    description = "Scripts must not echo or print secret variables to the log."

    def _tokens(self, pipeline: Pipeline, step: Step) -> list[tuple[str, str]]:
        """``(needle, secret)`` pairs; needles are lowercase substrings to look for."""
        tokens = [(name.lower(), name) for name in pipeline.secret_names()]
        for env_name, env_value in step.env.items():
            if env_value.is_secret_ref:
                tokens.append((env_name.lower(), env_name))
        return tokens

    def evaluate(self, pipeline: Pipeline, overlay: Overlay) -> list[Finding]:
        findings: list[Finding] = []
        for location, step in iter_steps(pipeline):
            tokens = self._tokens(pipeline, step)
            if not tokens:
                continue
            texts = script_texts(step)
            texts.extend(v.value for v in step.env.values() if not v.is_secret_ref)
            for text in texts:
                for line_no, line in enumerate(text.splitlines(), start=1):
                    verb = _ECHO_VERB_RE.search(line)
                    if verb is None:
                        continue
                    tail = line[verb.end():].lower()
                    leaked = next((secret for needle, secret in tokens if needle in tail), None)
                    if leaked is not None:
                        findings.append(
                            self.finding(
                                location,
                                f"Line {line_no} writes secret '{leaked}' to the log "
                                f"via '{verb.group(1)}'",
                            )
                        )
        return findings


class SecretLiteralInEnv(BaseRule):
    id = "SecretLiteralInEnv"
    category = Category.SECURITY
    default_severity = Severity.ERROR
    description = "Secret values must be mapped into env from $(secret) macros, never as literals."

    def evaluate(self, pipeline: Pipeline, overlay: Overlay) -> list[Finding]:
        secrets = [(_normalize(name), name) for name in pipeline.secret_names()]
        if not secrets:
            return []
        findings: list[Finding] = []
        for location, step in iter_steps(pipeline):
            for env_name, env_value in step.env.items():
                value = env_value.value.strip()
                if env_value.is_secret_ref or not value or value.startswith(("$(", "$[", "${{")):
                    continue
                key_norm = _normalize(env_name)
                value_norm = _normalize(value)
                for needle, secret in secrets:
                    if needle and (needle in key_norm or needle in value_norm):
                        findings.append(
                            self.finding(
                                location,
                                f"env '{env_name}' holds a literal value matching secret "
                                f"'{secret}'; map it from $({secret}) instead",
                            )
                        )
                        break
        return findings
