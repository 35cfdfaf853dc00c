# Copyright 2025 The IREE Authors
#
# Licensed under the Apache License v2.0 with LLVM Exceptions.
# See https://llvm.org/LICENSE.txt for license information.
# SPDX-License-Identifier: Apache-2.0 WITH LLVM-exception

from typing import Optional


class CIBenchError(Exception):
    """Base class of the errors raised by ci_bench."""


class CommandExecutionError(CIBenchError):
    """A shell command exited with non-zero status or could not be spawned."""

    def __init__(self, command: str, cause: Exception):
        super().__init__(f"Command `{command}` failed: {cause}")
        self.command = command
        self.cause = cause


class NoRunFoundError(CIBenchError):
    """No workflow run exists for the workflow/branch pair."""


class NoArtifactFoundError(CIBenchError):
    """The resolved workflow run has no artifact with the expected name."""


class MissingResultFileError(CIBenchError):
    """The expected benchmark result file is not on disk."""


class ArtifactUploadError(CIBenchError):
    """The artifact could not be uploaded to the results service."""


class GithubApiError(CIBenchError):
    """GitHub API returned an unexpected status code."""

    def __init__(self, message: str, status_code: Optional[int] = None, text: str = ""):
        super().__init__(
            f"{message}; error code: {status_code} - {text}"
            if status_code is not None
            else message
        )
        self.status_code = status_code
        self.text = text
