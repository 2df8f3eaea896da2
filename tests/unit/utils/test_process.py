"""Tests for roast.utils.process module."""

import sys
from pathlib import Path

import pytest

from roast.utils.process import (
    ProcessExecutionError,
    run_command,
    run_script,
    run_shell,
    split_script,
)


class TestSplitScript:
    """Tests for install script splitting."""

    def test_one_command_per_line(self):
        """Each non-empty line is a command."""
        assert split_script("make\nmake install\n") == ["make", "make install"]

    def test_skips_comments_and_blanks(self):
        """Comments and blank lines are dropped."""
        script = "# build it\n\n  ./gradlew build\n   # done\n"

        assert split_script(script) == ["./gradlew build"]

    def test_joins_continuation_lines(self):
        """A trailing backslash continues the command."""
        script = "poetry export \\\n  --without-hashes \\\n  -o req.txt\npip install -r req.txt"

        assert split_script(script) == [
            "poetry export --without-hashes -o req.txt",
            "pip install -r req.txt",
        ]

    def test_dangling_continuation(self):
        """A continuation at the end of the script is still run."""
        assert split_script("echo hi \\") == ["echo hi"]


class TestRunCommand:
    """Tests for run_command."""

    @pytest.mark.asyncio
    async def test_captures_output(self, temp_dir: Path):
        """Captures stdout of a successful command."""
        result = await run_command(
            [sys.executable, "-c", "print('hello')"], cwd=temp_dir
        )

        assert result.ok
        assert result.stdout.strip() == "hello"

    @pytest.mark.asyncio
    async def test_non_zero_exit_raises(self, temp_dir: Path):
        """A failing command raises with the tail of stderr."""
        code = "import sys; sys.stderr.write('boom\\n'); sys.exit(4)"

        with pytest.raises(ProcessExecutionError, match="boom") as exc_info:
            await run_command([sys.executable, "-c", code], cwd=temp_dir)

        assert exc_info.value.returncode == 4
        assert exc_info.value.code == 5

    @pytest.mark.asyncio
    async def test_unchecked_failure_returns_result(self, temp_dir: Path):
        """With check=False the failing result is returned."""
        result = await run_command(
            [sys.executable, "-c", "raise SystemExit(2)"], cwd=temp_dir, check=False
        )

        assert not result.ok
        assert result.returncode == 2

    @pytest.mark.asyncio
    async def test_missing_program_raises(self, temp_dir: Path):
        """A program that cannot be started is a ProcessExecutionError."""
        with pytest.raises(ProcessExecutionError, match="Unable to start"):
            await run_command(["roast-no-such-program-xyz"], cwd=temp_dir)


class TestRunShell:
    """Tests for run_shell and run_script."""

    @pytest.mark.asyncio
    async def test_runs_in_working_directory(self, temp_dir: Path):
        """Shell commands run in the given directory."""
        await run_shell("echo content > out.txt", cwd=temp_dir)

        assert (temp_dir / "out.txt").read_text().strip() == "content"

    @pytest.mark.asyncio
    async def test_script_stops_at_first_failure(self, temp_dir: Path):
        """Commands after a failing one do not run."""
        with pytest.raises(ProcessExecutionError) as exc_info:
            await run_script("touch first\nfalse\ntouch second\n", cwd=temp_dir)

        assert exc_info.value.command == "false"
        assert (temp_dir / "first").exists()
        assert not (temp_dir / "second").exists()

    @pytest.mark.asyncio
    async def test_script_results(self, temp_dir: Path):
        """Every command result is returned."""
        results = await run_script("echo a\necho b", cwd=temp_dir)

        assert [r.stdout.strip() for r in results] == ["a", "b"]
