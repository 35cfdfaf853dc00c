# Copyright 2025 The IREE Authors
#
# Licensed under the Apache License v2.0 with LLVM Exceptions.
# See https://llvm.org/LICENSE.txt for license information.
# SPDX-License-Identifier: Apache-2.0 WITH LLVM-exception
"""Composes the comparison comment and posts it on pull requests.

A pull request carries at most one comparison comment per (ref, branch)
pair. The first line of the comment is used to find it again, so re-running
the job updates the comment instead of adding a new one.
"""

import logging
from dataclasses import dataclass

from ci_bench.github_client import GithubClient, WorkflowRun

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommentData(object):
    """Benchmark comment data."""

    # Opening text shared by every revision of the same comment.
    type_id: str
    # Markdown to post as the comment.
    body: str


def make_comment_prefix(ref: str, branch: str) -> str:
    return f"Comparing `{ref}` with `{branch}`"


def make_comment(ref: str, run: WorkflowRun, benchmark_output: str) -> CommentData:
    prefix = make_comment_prefix(ref, run.head_branch)
    body = (
        f"{prefix} ({run.head_sha}, ran: {run.updated_at})\n"
        "Merging this pull request will have the following performance impact:\n"
        f"```\n{benchmark_output}\n```\n"
    )
    return CommentData(type_id=prefix, body=body)


def publish_comment(client: GithubClient, pr_number: int, comment: CommentData) -> int:
    """Updates the previous comment with the same prefix or creates one.

    Returns the id of the comment.
    """
    logger.info("Finding existing comment")
    comment_id = client.find_comment_on_pr(pr_number, comment.type_id)
    if comment_id is not None:
        logger.info(f"Found existing comment {comment_id}")
        client.update_comment_on_pr(comment_id=comment_id, content=comment.body)
        return comment_id

    comment_id = client.create_comment_on_pr(pr_number=pr_number, content=comment.body)
    logger.info(f"Created comment {comment_id}")
    return comment_id
