# Copyright 2025 The IREE Authors
#
# Licensed under the Apache License v2.0 with LLVM Exceptions.
# See https://llvm.org/LICENSE.txt for license information.
# SPDX-License-Identifier: Apache-2.0 WITH LLVM-exception
"""Compares benchmark results of a pull request with a baseline branch.

On push, runs `base-cmd` and uploads `base-result` as the `bench-results`
artifact of the run. On pull request, downloads that artifact from the
latest run of the same workflow on `compare-against`, runs `compare-cmd` and
posts its output as a pull request comment.

Both paths write the benchmark output to the job summary. Any error is
reported as the job failure message and the process exits with status 1.

Example usage:
  # Export the GitHub Actions environment and INPUT_* variables, then:
  python3 -m ci_bench --log-level=DEBUG
"""

import argparse
import logging
import os
import pathlib
import sys
from typing import Mapping, Optional

from ci_bench import action_context
from ci_bench.action_context import ActionInputs, Mode, TriggerContext
from ci_bench.artifact_client import (
    ARTIFACT_NAME,
    ArtifactUploader,
    download_artifact_for_run,
)
from ci_bench.benchmark_comment import make_comment, publish_comment
from ci_bench.command_utils import execute_cmd_and_get_output, strip_ansi_codes
from ci_bench.github_client import GITHUB_API_URL, APIRequester, GithubClient

logger = logging.getLogger(__name__)

DEFAULT_ACTION_YML = pathlib.Path(__file__).resolve().parent.parent / "action.yml"


def run_base(
    inputs: ActionInputs,
    uploader: Optional[ArtifactUploader] = None,
    environ: Mapping[str, str] = os.environ,
):
    logger.info("Running base")
    base_cmd = action_context.require_input("base-cmd", inputs.base_cmd)
    base_result = action_context.require_input("base-result", inputs.base_result)

    benchmark_output = strip_ansi_codes(execute_cmd_and_get_output(base_cmd))
    logger.info(benchmark_output)

    if uploader is None:
        uploader = ArtifactUploader.from_environment(environ)
    result = uploader.upload_artifact(
        ARTIFACT_NAME, [base_result], root_dir=pathlib.Path(".")
    )
    logger.info(f"Uploaded artifact {result.id} ({result.size} bytes)")

    action_context.write_job_summary(
        action_context.format_job_summary(benchmark_output), environ
    )


def run_pull_request(
    inputs: ActionInputs,
    context: TriggerContext,
    client: GithubClient,
    environ: Mapping[str, str] = os.environ,
    work_dir: pathlib.Path = pathlib.Path("."),
):
    compare_against = action_context.require_input(
        "compare-against", inputs.compare_against
    )
    base_result = action_context.require_input("base-result", inputs.base_result)
    compare_cmd = action_context.require_input("compare-cmd", inputs.compare_cmd)
    workflow_file = action_context.parse_workflow_file_from_ref(context.workflow_ref)

    logger.info(
        f"Retrieving workflow runs for {workflow_file} on branch {compare_against}"
    )
    workflow_run = client.get_latest_workflow_run(workflow_file, compare_against)

    download_artifact_for_run(
        client, workflow_run, result_file=base_result, work_dir=work_dir
    )

    logger.info(f"Running against {workflow_run.head_branch}")
    benchmark_output = strip_ansi_codes(
        execute_cmd_and_get_output(compare_cmd, cwd=work_dir)
    )
    logger.info(benchmark_output)

    comment = make_comment(context.ref, workflow_run, benchmark_output)
    publish_comment(client, context.pr_number, comment)

    action_context.write_job_summary(
        action_context.format_job_summary(benchmark_output), environ
    )


def run(
    inputs: ActionInputs,
    context: TriggerContext,
    environ: Mapping[str, str] = os.environ,
    client: Optional[GithubClient] = None,
    uploader: Optional[ArtifactUploader] = None,
) -> bool:
    """Runs the steps of the context's mode.

    Returns False if a step failed. The failure has been reported already.
    """
    try:
        if context.mode == Mode.PULL_REQUEST:
            logger.info("Context is pull request")
            if client is None:
                token = action_context.require_input("token", inputs.token)
                client = GithubClient(
                    APIRequester(github_token=token),
                    owner=context.owner,
                    repo=context.repo,
                    api_url=environ.get("GITHUB_API_URL", GITHUB_API_URL),
                )
            run_pull_request(inputs, context, client, environ)
        else:
            logger.info("Context is base")
            run_base(inputs, uploader, environ)
    except Exception as e:
        logger.debug("Run failed", exc_info=True)
        action_context.set_failed(action_context.failure_message(e))
        return False
    return True


def _parse_arguments(argv=None):
    parser = argparse.ArgumentParser(description="CI benchmark comparison.")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
        help="Set the logging level",
    )
    parser.add_argument(
        "--action-yml",
        type=pathlib.Path,
        default=DEFAULT_ACTION_YML,
        help="action.yml to read input defaults from",
    )
    return parser.parse_args(argv)


def main(args: argparse.Namespace) -> int:
    logging.basicConfig(level=args.log_level, format="%(message)s")

    try:
        defaults = {}
        if args.action_yml.exists():
            defaults = action_context.load_input_defaults(args.action_yml)
        inputs = ActionInputs.from_environment(os.environ, defaults)
        context = TriggerContext.from_environment(os.environ)
    except Exception as e:
        logger.debug("Reading the action environment failed", exc_info=True)
        action_context.set_failed(action_context.failure_message(e))
        return 1
    return 0 if run(inputs, context) else 1


def cli():
    sys.exit(main(_parse_arguments()))


if __name__ == "__main__":
    cli()
