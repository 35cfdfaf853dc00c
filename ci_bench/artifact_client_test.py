#!/usr/bin/env python3
# Copyright 2025 The IREE Authors
#
# Licensed under the Apache License v2.0 with LLVM Exceptions.
# See https://llvm.org/LICENSE.txt for license information.
# SPDX-License-Identifier: Apache-2.0 WITH LLVM-exception

import base64
import hashlib
import http.client
import io
import json
import pathlib
import shutil
import tempfile
import unittest
import zipfile
from unittest import mock

from ci_bench import artifact_client
from ci_bench.errors import (
    ArtifactUploadError,
    GithubApiError,
    MissingResultFileError,
    NoArtifactFoundError,
)
from ci_bench.testing.fake_github_api import (
    FakeGithubApi,
    make_response,
    make_zip,
)
from ci_bench.github_client import Artifact, GithubClient, WorkflowRun

RESULTS_URL = "https://results-receiver.actions.githubusercontent.com/"
SERVICE_URL = (
    "https://results-receiver.actions.githubusercontent.com/"
    "twirp/github.actions.results.api.v1.ArtifactService"
)


def make_runtime_token(claims: dict) -> str:
    def encode(data: dict) -> str:
        return base64.urlsafe_b64encode(json.dumps(data).encode()).decode().rstrip("=")

    return f"{encode({'alg': 'none'})}.{encode(claims)}.signature"


RUNTIME_TOKEN = make_runtime_token(
    {"scp": "Actions.ExampleScope Actions.Results:run-backend-id:job-backend-id"}
)

RUN = WorkflowRun(
    id=100,
    head_branch="main",
    head_sha="abcdef",
    updated_at="2025-01-02T03:04:05Z",
    url="https://api.github.com/repos/octocat/example/actions/runs/100",
    html_url="https://github.com/octocat/example/actions/runs/100",
)


class ArtifactUploaderTest(unittest.TestCase):
    def setUp(self):
        self._tmp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp_dir.cleanup)
        self.tmp_path = pathlib.Path(self._tmp_dir.name)
        session_patcher = mock.patch("requests.session", autospec=True)
        self._mock_session = session_patcher.start().return_value
        self.addCleanup(session_patcher.stop)

    def test_get_backend_ids(self):
        self.assertEqual(
            artifact_client.get_backend_ids(RUNTIME_TOKEN),
            ("run-backend-id", "job-backend-id"),
        )

    def test_get_backend_ids_without_results_scope(self):
        token = make_runtime_token({"scp": "Actions.ExampleScope"})

        with self.assertRaises(ArtifactUploadError):
            artifact_client.get_backend_ids(token)

    def test_get_backend_ids_malformed_token(self):
        with self.assertRaises(ArtifactUploadError):
            artifact_client.get_backend_ids("not-a-jwt")

    def test_create_zip(self):
        (self.tmp_path / "out").mkdir()
        result_file = self.tmp_path / "out" / "result.txt"
        result_file.write_text("done\n")

        archive = artifact_client.create_zip([str(result_file)], self.tmp_path)

        with zipfile.ZipFile(io.BytesIO(archive)) as zip_file:
            self.assertEqual(zip_file.namelist(), ["out/result.txt"])
            self.assertEqual(zip_file.read("out/result.txt"), b"done\n")

    def test_create_zip_missing_file(self):
        with self.assertRaises(MissingResultFileError):
            artifact_client.create_zip(
                [str(self.tmp_path / "result.txt")], self.tmp_path
            )

    def test_from_environment_missing_token(self):
        with self.assertRaises(ArtifactUploadError):
            artifact_client.ArtifactUploader.from_environment(
                {"ACTIONS_RESULTS_URL": RESULTS_URL}
            )

    def test_from_environment_missing_results_url(self):
        with self.assertRaises(ArtifactUploadError):
            artifact_client.ArtifactUploader.from_environment(
                {"ACTIONS_RUNTIME_TOKEN": RUNTIME_TOKEN}
            )

    def test_upload_artifact(self):
        result_file = self.tmp_path / "result.txt"
        result_file.write_text("done\n")
        self._mock_session.post.side_effect = [
            make_response(
                http.client.OK,
                {"ok": True, "signedUploadUrl": "https://blob.example.com/upload"},
            ),
            make_response(http.client.OK, {"ok": True, "artifactId": "555"}),
        ]
        self._mock_session.put.return_value = make_response(http.client.CREATED)
        uploader = artifact_client.ArtifactUploader.from_environment(
            {"ACTIONS_RUNTIME_TOKEN": RUNTIME_TOKEN, "ACTIONS_RESULTS_URL": RESULTS_URL}
        )

        result = uploader.upload_artifact(
            "bench-results", [str(result_file)], root_dir=self.tmp_path
        )

        self.assertEqual(result.id, 555)
        archive = self._mock_session.put.call_args.kwargs["data"]
        self.assertEqual(result.size, len(archive))
        with zipfile.ZipFile(io.BytesIO(archive)) as zip_file:
            self.assertEqual(zip_file.namelist(), ["result.txt"])

        create_call, finalize_call = self._mock_session.post.call_args_list
        self.assertEqual(create_call.args[0], f"{SERVICE_URL}/CreateArtifact")
        self.assertEqual(
            json.loads(create_call.kwargs["data"]),
            {
                "workflowRunBackendId": "run-backend-id",
                "workflowJobRunBackendId": "job-backend-id",
                "name": "bench-results",
                "version": 4,
            },
        )
        self.assertEqual(
            create_call.kwargs["headers"]["Authorization"], f"Bearer {RUNTIME_TOKEN}"
        )
        self.assertEqual(
            self._mock_session.put.call_args.args[0], "https://blob.example.com/upload"
        )
        self.assertEqual(finalize_call.args[0], f"{SERVICE_URL}/FinalizeArtifact")
        self.assertEqual(
            json.loads(finalize_call.kwargs["data"]),
            {
                "workflowRunBackendId": "run-backend-id",
                "workflowJobRunBackendId": "job-backend-id",
                "name": "bench-results",
                "size": str(len(archive)),
                "hash": f"sha256:{hashlib.sha256(archive).hexdigest()}",
            },
        )

    def test_upload_artifact_rejected(self):
        result_file = self.tmp_path / "result.txt"
        result_file.write_text("done\n")
        self._mock_session.post.return_value = make_response(
            http.client.OK, {"ok": False}
        )
        uploader = artifact_client.ArtifactUploader(RUNTIME_TOKEN, RESULTS_URL)

        with self.assertRaises(ArtifactUploadError):
            uploader.upload_artifact(
                "bench-results", [str(result_file)], root_dir=self.tmp_path
            )

        self._mock_session.put.assert_not_called()

    def test_upload_artifact_blob_failure(self):
        result_file = self.tmp_path / "result.txt"
        result_file.write_text("done\n")
        self._mock_session.post.return_value = make_response(
            http.client.OK,
            {"ok": True, "signedUploadUrl": "https://blob.example.com/upload"},
        )
        self._mock_session.put.return_value = make_response(http.client.FORBIDDEN)
        uploader = artifact_client.ArtifactUploader(RUNTIME_TOKEN, RESULTS_URL)

        with self.assertRaises(GithubApiError) as cm:
            uploader.upload_artifact(
                "bench-results", [str(result_file)], root_dir=self.tmp_path
            )

        self.assertEqual(cm.exception.status_code, http.client.FORBIDDEN)
        self.assertEqual(self._mock_session.post.call_count, 1)


class DownloadArtifactTest(unittest.TestCase):
    def setUp(self):
        self._tmp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp_dir.cleanup)
        self.work_dir = pathlib.Path(self._tmp_dir.name)
        self.api = FakeGithubApi()
        self.client = GithubClient(self.api, owner="octocat", repo="example")

    def test_find_artifact_first_match_wins(self):
        artifacts = [
            Artifact(name="logs", id=1, size_in_bytes=1),
            Artifact(name="bench-results", id=2, size_in_bytes=2),
            Artifact(name="bench-results", id=3, size_in_bytes=3),
        ]

        artifact = artifact_client.find_artifact(artifacts, "bench-results")

        self.assertEqual(artifact.id, 2)
        self.assertIsNone(artifact_client.find_artifact(artifacts, "other"))

    @unittest.skipIf(shutil.which("unzip") is None, "unzip is not installed")
    def test_download_artifact_for_run(self):
        self.api.artifacts[100] = [{"name": "bench-results", "id": 2, "size_in_bytes": 9}]
        self.api.artifact_zips[2] = make_zip({"result.txt": "1.0s"})

        result_path = artifact_client.download_artifact_for_run(
            self.client, RUN, "result.txt", work_dir=self.work_dir
        )

        self.assertEqual(result_path, self.work_dir / "result.txt")
        self.assertEqual(result_path.read_text(), "1.0s")
        self.assertTrue((self.work_dir / "bench-results.zip").exists())

    def test_download_artifact_for_run_no_artifact(self):
        self.api.artifacts[100] = [{"name": "logs", "id": 1, "size_in_bytes": 9}]

        with self.assertRaises(NoArtifactFoundError) as cm:
            artifact_client.download_artifact_for_run(
                self.client, RUN, "result.txt", work_dir=self.work_dir
            )

        self.assertIn(RUN.url, str(cm.exception))
        self.assertEqual(self.api.calls_matching("GET", r"/zip$"), [])
        self.assertEqual(list(self.work_dir.iterdir()), [])

    @unittest.skipIf(shutil.which("unzip") is None, "unzip is not installed")
    def test_download_artifact_for_run_missing_result_file(self):
        self.api.artifacts[100] = [{"name": "bench-results", "id": 2, "size_in_bytes": 9}]
        self.api.artifact_zips[2] = make_zip({"other.txt": "1.0s"})

        with self.assertRaises(MissingResultFileError) as cm:
            artifact_client.download_artifact_for_run(
                self.client, RUN, "result.txt", work_dir=self.work_dir
            )

        self.assertIn(RUN.html_url, str(cm.exception))
        self.assertTrue((self.work_dir / "other.txt").exists())


if __name__ == "__main__":
    unittest.main()
