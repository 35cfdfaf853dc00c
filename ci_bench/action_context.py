# Copyright 2025 The IREE Authors
#
# Licensed under the Apache License v2.0 with LLVM Exceptions.
# See https://llvm.org/LICENSE.txt for license information.
# SPDX-License-Identifier: Apache-2.0 WITH LLVM-exception
"""Reads the GitHub Actions environment and writes workflow outputs.

The following environment variables are used:
- INPUT_<NAME>: action inputs, set by the runner from the `with:` block.
- GITHUB_EVENT_NAME: GitHub event name, e.g. pull_request.
- GITHUB_EVENT_PATH: path to the JSON payload of the triggering event.
- GITHUB_REF: ref that triggered the workflow, e.g. refs/pull/1/merge.
- GITHUB_REPOSITORY: GitHub org and repository, e.g. octocat/example.
- GITHUB_WORKFLOW_REF: GitHub workflow ref, e.g.
    octocat/example/.github/workflows/ci.yml@refs/heads/main.
- GITHUB_STEP_SUMMARY: path to write workflow summary output.
"""

import enum
import json
import logging
import os
import pathlib
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import markdown_strings as md
import yaml

logger = logging.getLogger(__name__)

WORKFLOWS_DIR_SEGMENT = "/.github/workflows/"
SUMMARY_TITLE = "CI Bench results"
UNKNOWN_ERROR_MESSAGE = "Unknown error"


@enum.unique
class Mode(enum.Enum):
    """Behavior selected once per invocation from the trigger context."""

    # Direct push: produce and upload the baseline results.
    BASE = "base"
    # Pull request: compare against the baseline and comment.
    PULL_REQUEST = "pull_request"


def load_input_defaults(action_yml: pathlib.Path) -> Dict[str, str]:
    """Returns the `default:` values of the inputs declared in action.yml.

    Defaults using `${{ }}` expressions are only evaluated by the runner and
    are skipped.
    """
    action = yaml.load(
        action_yml.read_text(encoding="utf-8"), Loader=yaml.SafeLoader
    )
    defaults = {}
    for name, spec in (action.get("inputs") or {}).items():
        if not spec or spec.get("default") is None:
            continue
        default = str(spec["default"])
        if "${{" in default:
            continue
        defaults[name] = default
    return defaults


def get_input(
    name: str,
    environ: Mapping[str, str] = os.environ,
    defaults: Optional[Mapping[str, str]] = None,
) -> str:
    """Gets an action input the same way the Actions toolkit does."""
    key = "INPUT_" + name.replace(" ", "_").upper()
    value = environ.get(key, "").strip()
    if not value and defaults:
        value = defaults.get(name, "").strip()
    return value


def require_input(name: str, value: str) -> str:
    if not value:
        raise ValueError(f"Input required and not supplied: {name}")
    return value


@dataclass(frozen=True)
class ActionInputs(object):
    """Inputs of the action. Empty strings mean not supplied."""

    token: str
    compare_against: str
    base_result: str
    compare_cmd: str
    base_cmd: str

    @classmethod
    def from_environment(
        cls,
        environ: Mapping[str, str] = os.environ,
        defaults: Optional[Mapping[str, str]] = None,
    ) -> "ActionInputs":
        token = get_input("token", environ, defaults) or environ.get(
            "GITHUB_TOKEN", ""
        )
        return cls(
            token=token,
            compare_against=get_input("compare-against", environ, defaults),
            base_result=get_input("base-result", environ, defaults),
            compare_cmd=get_input("compare-cmd", environ, defaults),
            base_cmd=get_input("base-cmd", environ, defaults),
        )


def parse_workflow_file_from_ref(workflow_ref: str) -> str:
    """Extracts the workflow file name from a workflow ref.

    The format of workflow ref: `${repo}/.github/workflows/${file}@${ref}`.
    """
    if WORKFLOWS_DIR_SEGMENT not in workflow_ref:
        raise ValueError(f"Can't parse the workflow file from '{workflow_ref}'.")
    workflow_file = workflow_ref.split(WORKFLOWS_DIR_SEGMENT, maxsplit=1)[1]
    return workflow_file.split("@", maxsplit=1)[0]


def _load_event_payload(event_path: Optional[str]) -> Dict[str, Any]:
    if not event_path:
        return {}
    path = pathlib.Path(event_path)
    if not path.exists():
        logger.warning(f"Event payload file '{event_path}' does not exist.")
        return {}
    return json.loads(path.read_text(encoding="utf-8"))


@dataclass(frozen=True)
class TriggerContext(object):
    """Read-only facts about the triggering event."""

    event_name: str
    mode: Mode
    ref: str
    owner: str
    repo: str
    workflow_ref: str
    pr_number: Optional[int] = None

    @classmethod
    def from_environment(
        cls, environ: Mapping[str, str] = os.environ
    ) -> "TriggerContext":
        payload = _load_event_payload(environ.get("GITHUB_EVENT_PATH"))
        pull_request = payload.get("pull_request")
        owner, _, repo = environ.get("GITHUB_REPOSITORY", "").partition("/")
        return cls(
            event_name=environ.get("GITHUB_EVENT_NAME", ""),
            mode=Mode.PULL_REQUEST if pull_request else Mode.BASE,
            ref=environ.get("GITHUB_REF", ""),
            owner=owner,
            repo=repo,
            workflow_ref=environ.get("GITHUB_WORKFLOW_REF", ""),
            pr_number=int(pull_request["number"]) if pull_request else None,
        )


def format_job_summary(benchmark_output: str) -> str:
    return "\n".join(
        [md.header(SUMMARY_TITLE, 1), md.code_block(benchmark_output, "text")]
    )


def write_job_summary(summary: str, environ: Mapping[str, str] = os.environ):
    """Write markdown messages on Github workflow UI.
    See https://docs.github.com/en/actions/using-workflows/workflow-commands-for-github-actions#adding-a-job-summary
    """
    step_summary_file = environ.get("GITHUB_STEP_SUMMARY")
    if not step_summary_file:
        logger.info(f"GITHUB_STEP_SUMMARY is not set, job summary:\n{summary}")
        return
    with open(step_summary_file, "a", encoding="utf-8") as f:
        # Use double newlines to split sections in markdown.
        f.write(summary + "\n\n")


def _escape_workflow_command(value: str) -> str:
    return value.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def failure_message(error: BaseException) -> str:
    return str(error) or UNKNOWN_ERROR_MESSAGE


def set_failed(message: str):
    """Emits an error annotation. The caller sets the failing exit code."""
    print(f"::error::{_escape_workflow_command(message)}", flush=True)
