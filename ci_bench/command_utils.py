# Copyright 2025 The IREE Authors
#
# Licensed under the Apache License v2.0 with LLVM Exceptions.
# See https://llvm.org/LICENSE.txt for license information.
# SPDX-License-Identifier: Apache-2.0 WITH LLVM-exception
"""Helpers to run shell commands and clean up their output."""

import logging
import re
import subprocess

from ci_bench.errors import CommandExecutionError

logger = logging.getLogger(__name__)

# OSC (ESC ] ... BEL or ST), CSI (ESC [ params final) and two-character escapes.
ANSI_ESCAPE_PATTERN = re.compile(
    r"\x1b(?:\][^\x07\x1b]*(?:\x07|\x1b\\)|\[[0-?]*[ -/]*[@-~]|[@-Z\\-_])"
)


def execute_cmd_and_get_output(command: str, verbose: bool = False, **kwargs) -> str:
    """Runs a shell command and returns its stdout.

    The whole output is buffered in memory. No timeout is applied. Bytes that
    aren't valid UTF-8 are replaced with U+FFFD.

    Raises:
      CommandExecutionError if the command can't be spawned or exits with a
      non-zero status.
    """
    if verbose:
        logger.info(f"cmd: {command}")
    try:
        completed = subprocess.run(
            command,
            shell=True,
            check=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            **kwargs,
        )
    except subprocess.CalledProcessError as exc:
        logger.error(
            f"The following command failed:\n\n{command}\n\n"
            f"Return code: {exc.returncode}"
        )
        if exc.stdout:
            logger.error(f"Stdout:\n\n{exc.stdout}")
        if exc.stderr:
            logger.error(f"Stderr:\n\n{exc.stderr}")
        raise CommandExecutionError(command, exc) from exc
    except OSError as exc:
        raise CommandExecutionError(command, exc) from exc
    return completed.stdout


def strip_ansi_codes(text: str) -> str:
    """Removes terminal color and style escape sequences from the text."""
    while True:
        stripped = ANSI_ESCAPE_PATTERN.sub("", text)
        # Removing a sequence can splice the remains of another one together.
        if stripped == text:
            return stripped
        text = stripped
