# Copyright 2025 The IREE Authors
#
# Licensed under the Apache License v2.0 with LLVM Exceptions.
# See https://llvm.org/LICENSE.txt for license information.
# SPDX-License-Identifier: Apache-2.0 WITH LLVM-exception
"""Uploads and downloads the benchmark results artifact.

Uploading goes through the Actions results service, the same backend used by
actions/upload-artifact@v4. It requires the environment variables set by the
runner for actions:

- ACTIONS_RUNTIME_TOKEN: JWT scoped to the current workflow job.
- ACTIONS_RESULTS_URL: base URL of the results service.

Composite actions must forward them explicitly, see action.yml.
"""

import base64
import hashlib
import http.client
import io
import json
import logging
import os
import pathlib
import zipfile
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

import requests

from ci_bench.command_utils import execute_cmd_and_get_output
from ci_bench.errors import (
    ArtifactUploadError,
    GithubApiError,
    MissingResultFileError,
    NoArtifactFoundError,
)
from ci_bench.github_client import Artifact, GithubClient, WorkflowRun

logger = logging.getLogger(__name__)

ARTIFACT_NAME = "bench-results"
ARTIFACT_SERVICE_PATH = "twirp/github.actions.results.api.v1.ArtifactService"
ARTIFACT_VERSION = 4
RESULTS_SCOPE_PREFIX = "Actions.Results:"


@dataclass(frozen=True)
class UploadResult(object):
    id: int
    size: int


def get_backend_ids(runtime_token: str) -> Tuple[str, str]:
    """Returns (workflow run backend id, job run backend id) of the token.

    The `scp` claim contains a scope of the form
    `Actions.Results:<run backend id>:<job run backend id>`.
    """
    try:
        encoded_payload = runtime_token.split(".")[1]
        # JWT segments are base64url without padding.
        padded = encoded_payload + "=" * (-len(encoded_payload) % 4)
        claims = json.loads(base64.urlsafe_b64decode(padded))
    except (IndexError, ValueError) as e:
        raise ArtifactUploadError(f"Malformed ACTIONS_RUNTIME_TOKEN: {e}") from e

    for scope in claims.get("scp", "").split(" "):
        if not scope.startswith(RESULTS_SCOPE_PREFIX):
            continue
        parts = scope.split(":")
        if len(parts) != 3:
            raise ArtifactUploadError(f"Unexpected results scope: {scope}")
        return parts[1], parts[2]

    raise ArtifactUploadError("ACTIONS_RUNTIME_TOKEN has no results service scope")


def create_zip(files: Sequence[str], root_dir: pathlib.Path) -> bytes:
    """Zips the files, storing paths relative to root_dir."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zip_file:
        for file in files:
            path = pathlib.Path(file)
            if not path.is_file():
                raise MissingResultFileError(f"File to upload does not exist: {file}")
            arcname = path.resolve().relative_to(root_dir.resolve())
            zip_file.write(path, arcname=str(arcname))
    return buffer.getvalue()


class ArtifactUploader(object):
    """Uploads artifacts scoped to the current workflow run."""

    def __init__(self, runtime_token: str, results_url: str):
        self._runtime_token = runtime_token
        self._service_url = f"{results_url.rstrip('/')}/{ARTIFACT_SERVICE_PATH}"
        self._session = requests.session()

    @classmethod
    def from_environment(
        cls, environ: Mapping[str, str] = os.environ
    ) -> "ArtifactUploader":
        runtime_token = environ.get("ACTIONS_RUNTIME_TOKEN")
        if not runtime_token:
            raise ArtifactUploadError("ACTIONS_RUNTIME_TOKEN must be set.")
        results_url = environ.get("ACTIONS_RESULTS_URL")
        if not results_url:
            raise ArtifactUploadError("ACTIONS_RESULTS_URL must be set.")
        return cls(runtime_token=runtime_token, results_url=results_url)

    def _call(self, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = self._session.post(
            f"{self._service_url}/{method}",
            data=json.dumps(payload),
            headers={
                "Authorization": f"Bearer {self._runtime_token}",
                "Content-Type": "application/json",
            },
        )
        if response.status_code != http.client.OK:
            raise GithubApiError(
                f"{method} failed", response.status_code, response.text
            )
        result = response.json()
        if not result.get("ok"):
            raise ArtifactUploadError(f"{method} was rejected: {result}")
        return result

    def upload_artifact(
        self, name: str, files: Sequence[str], root_dir: pathlib.Path
    ) -> UploadResult:
        run_backend_id, job_backend_id = get_backend_ids(self._runtime_token)
        ids = {
            "workflowRunBackendId": run_backend_id,
            "workflowJobRunBackendId": job_backend_id,
        }
        archive = create_zip(files, root_dir)

        created = self._call(
            "CreateArtifact", {**ids, "name": name, "version": ARTIFACT_VERSION}
        )
        response = self._session.put(
            created["signedUploadUrl"],
            data=archive,
            headers={
                "x-ms-blob-type": "BlockBlob",
                "Content-Type": "application/zip",
            },
        )
        if response.status_code != http.client.CREATED:
            raise GithubApiError(
                f"Failed to upload artifact {name}",
                response.status_code,
                response.text,
            )

        digest = hashlib.sha256(archive).hexdigest()
        finalized = self._call(
            "FinalizeArtifact",
            {
                **ids,
                "name": name,
                "size": str(len(archive)),
                "hash": f"sha256:{digest}",
            },
        )
        return UploadResult(id=int(finalized["artifactId"]), size=len(archive))


def find_artifact(artifacts: Sequence[Artifact], name: str) -> Optional[Artifact]:
    # Several artifacts with the same name aren't disambiguated.
    return next((a for a in artifacts if a.name == name), None)


def download_artifact_for_run(
    client: GithubClient,
    run: WorkflowRun,
    result_file: str,
    name: str = ARTIFACT_NAME,
    work_dir: pathlib.Path = pathlib.Path("."),
) -> pathlib.Path:
    """Downloads and extracts the named artifact of the run into work_dir.

    Returns the path of the result file. The archive and the extracted files
    are left in place.
    """
    logger.info(f"Retrieving artifacts from workflow run {run.id}")
    artifacts = client.list_run_artifacts(run.id)
    artifact = find_artifact(artifacts, name)
    if artifact is None:
        raise NoArtifactFoundError(f"No artifact found for {run.url}")

    logger.info(f"Downloading artifact {artifact.id} from workflow run {run.id}")
    zip_file = work_dir / f"{name}.zip"
    client.download_artifact(artifact.id, zip_file)

    unzip_output = execute_cmd_and_get_output(f"unzip -o {zip_file.name}", cwd=work_dir)
    logger.info(unzip_output)

    result_path = work_dir / result_file
    if not result_path.exists():
        raise MissingResultFileError(f"Invalid artifact for {run.html_url}")
    return result_path
