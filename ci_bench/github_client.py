# Copyright 2025 The IREE Authors
#
# Licensed under the Apache License v2.0 with LLVM Exceptions.
# See https://llvm.org/LICENSE.txt for license information.
# SPDX-License-Identifier: Apache-2.0 WITH LLVM-exception
"""Thin client over the GitHub REST APIs used by ci_bench."""

import http.client
import json
import logging
import pathlib
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from ci_bench.errors import GithubApiError, NoRunFoundError

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"


@dataclass(frozen=True)
class WorkflowRun(object):
    id: int
    head_branch: str
    head_sha: str
    # Time of the last update, which is the completion time of finished runs.
    updated_at: str
    url: str
    html_url: str

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "WorkflowRun":
        return cls(
            id=data["id"],
            head_branch=data["head_branch"],
            head_sha=data["head_sha"],
            updated_at=data["updated_at"],
            url=data["url"],
            html_url=data["html_url"],
        )


@dataclass(frozen=True)
class Artifact(object):
    name: str
    id: int
    size_in_bytes: int

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "Artifact":
        return cls(
            name=data["name"],
            id=data["id"],
            size_in_bytes=data.get("size_in_bytes", 0),
        )


class APIRequester(object):
    """REST API client that injects proper GitHub authentication headers."""

    def __init__(self, github_token: str):
        self._api_headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"token {github_token}",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }
        self._session = requests.session()

    def get(self, endpoint: str, payload: Any = {}) -> requests.Response:
        return self._session.get(endpoint, params=payload, headers=self._api_headers)

    def post(self, endpoint: str, payload: Any = {}) -> requests.Response:
        return self._session.post(
            endpoint, data=json.dumps(payload), headers=self._api_headers
        )

    def patch(self, endpoint: str, payload: Any = {}) -> requests.Response:
        return self._session.patch(
            endpoint, data=json.dumps(payload), headers=self._api_headers
        )


class GithubClient(object):
    """Helper to call Github REST APIs of a single repository."""

    def __init__(
        self,
        requester: APIRequester,
        owner: str,
        repo: str,
        api_url: str = GITHUB_API_URL,
    ):
        self._requester = requester
        self.api_prefix = f"{api_url.rstrip('/')}/repos/{owner}/{repo}"

    def get_latest_workflow_run(self, workflow_id: str, branch: str) -> WorkflowRun:
        """Gets the most recent run of the workflow on the branch."""

        response = self._requester.get(
            endpoint=f"{self.api_prefix}/actions/workflows/{workflow_id}/runs",
            payload={"branch": branch, "per_page": 1, "page": 1},
        )
        if response.status_code != http.client.OK:
            raise GithubApiError(
                "Failed to list workflow runs", response.status_code, response.text
            )

        workflow_runs = response.json()["workflow_runs"]
        if not workflow_runs:
            raise NoRunFoundError(
                f"No workflow run found for {workflow_id} on branch {branch}"
            )
        return WorkflowRun.from_json(workflow_runs[0])

    def list_run_artifacts(self, run_id: int) -> List[Artifact]:
        response = self._requester.get(
            endpoint=f"{self.api_prefix}/actions/runs/{run_id}/artifacts"
        )
        if response.status_code != http.client.OK:
            raise GithubApiError(
                f"Failed to list artifacts of workflow run {run_id}",
                response.status_code,
                response.text,
            )
        return [Artifact.from_json(rec) for rec in response.json()["artifacts"]]

    def download_artifact(self, artifact_id: int, file: pathlib.Path):
        """Downloads the artifact as a zip archive to the file."""

        response = self._requester.get(
            endpoint=f"{self.api_prefix}/actions/artifacts/{artifact_id}/zip"
        )
        if response.status_code != http.client.OK:
            raise GithubApiError(
                f"Failed to download artifact {artifact_id}",
                response.status_code,
                response.text,
            )
        file.write_bytes(response.content)

    def list_comments_on_pr(
        self,
        pr_number: int,
        query_comment_per_page: int = 100,
        max_pages_to_search: int = 10,
    ) -> List[Dict[str, Any]]:
        """Lists the comments on the pull request, oldest first."""

        comments = []
        for page in range(1, max_pages_to_search + 1):
            response = self._requester.get(
                endpoint=f"{self.api_prefix}/issues/{pr_number}/comments",
                payload={"per_page": query_comment_per_page, "page": page},
            )
            if response.status_code != http.client.OK:
                raise GithubApiError(
                    "Failed to get PR comments from GitHub",
                    response.status_code,
                    response.text,
                )

            page_comments = response.json()
            logger.debug(f"Comment query response on page {page}: {page_comments}")
            comments.extend(page_comments)
            if len(page_comments) < query_comment_per_page:
                break

        return comments

    def find_comment_on_pr(self, pr_number: int, prefix: str) -> Optional[int]:
        """Gets the id of the first comment whose body starts with the prefix."""

        for comment in self.list_comments_on_pr(pr_number):
            if (comment.get("body") or "").startswith(prefix):
                return comment["id"]
        return None

    def update_comment_on_pr(self, comment_id: int, content: str):
        """Updates the content of the given comment id."""

        response = self._requester.patch(
            endpoint=f"{self.api_prefix}/issues/comments/{comment_id}",
            payload={"body": content},
        )
        if response.status_code != http.client.OK:
            raise GithubApiError(
                "Failed to comment on GitHub", response.status_code, response.text
            )

    def create_comment_on_pr(self, pr_number: int, content: str) -> int:
        """Posts the given content as comments to the pull request."""

        response = self._requester.post(
            endpoint=f"{self.api_prefix}/issues/{pr_number}/comments",
            payload={"body": content},
        )
        if response.status_code != http.client.CREATED:
            raise GithubApiError(
                "Failed to comment on GitHub", response.status_code, response.text
            )
        return response.json()["id"]
