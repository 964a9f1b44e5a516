import json
import subprocess
import sys
import tempfile
import threading
import unittest
from pathlib import Path
from unittest.mock import MagicMock

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from agentmux.config.types import HooksSection
from agentmux.errors import ContainerRuntimeError, HookCancelled, HookContainerUnavailable, HookNonZeroExit
from agentmux.hooks.runner import (
    ContainerTarget,
    HookKind,
    HookRunner,
    HostTarget,
    ShellCommandExecutor,
)
from agentmux.sandbox.runtime import CommandOutput


class FakeExecutor:
    def __init__(self, codes: dict[str, int] | None = None, prepare_error: Exception | None = None) -> None:
        self.codes = codes or {}
        self.prepare_error = prepare_error
        self.calls: list[tuple[str, object]] = []
        self.prepared: list[object] = []
        self.before_run = None

    def prepare(self, target) -> None:
        self.prepared.append(target)
        if self.prepare_error is not None:
            raise self.prepare_error

    def run(self, command: str, target) -> CommandOutput:
        if self.before_run is not None:
            self.before_run(command)
        self.calls.append((command, target))
        return CommandOutput(returncode=self.codes.get(command, 0), stdout=f"out:{command}", stderr="")


class HookRunnerTests(unittest.TestCase):
    def test_empty_list_does_not_run(self) -> None:
        executor = FakeExecutor()
        result = HookRunner(executor).run(HooksSection(on_create=[]), HookKind.CREATE, HostTarget(Path(".")))
        self.assertFalse(result.ran)
        self.assertTrue(result.ok)
        self.assertEqual(executor.calls, [])

    def test_create_stops_at_first_failure(self) -> None:
        executor = FakeExecutor({"two": 3})
        result = HookRunner(executor).run_commands(["one", "two", "three"], HookKind.CREATE, HostTarget(Path(".")))
        self.assertEqual([call[0] for call in executor.calls], ["one", "two"])
        self.assertIsInstance(result.error, HookNonZeroExit)
        self.assertEqual(result.error.code, 3)
        self.assertEqual(result.error.command, "two")
        self.assertFalse(result.ok)

    def test_launch_warns_and_continues(self) -> None:
        executor = FakeExecutor({"two": 1})
        with self.assertLogs("agentmux.hooks.runner", level="WARNING"):
            result = HookRunner(executor).run_commands(["one", "two", "three"], HookKind.LAUNCH, HostTarget(Path(".")))
        self.assertEqual([call[0] for call in executor.calls], ["one", "two", "three"])
        self.assertTrue(result.ok)
        self.assertEqual(len(result.warnings), 1)
        self.assertEqual(result.commands_run, 3)

    def test_cancel_before_next_command(self) -> None:
        executor = FakeExecutor()
        cancel_event = threading.Event()
        executor.before_run = lambda command: cancel_event.set() if command == "one" else None
        result = HookRunner(executor).run_commands(
            ["one", "two"],
            HookKind.CREATE,
            HostTarget(Path(".")),
            cancel_event=cancel_event,
        )
        self.assertEqual([call[0] for call in executor.calls], ["one"])
        self.assertTrue(result.cancelled)
        self.assertIsInstance(result.error, HookCancelled)

    def test_cancelled_launch_is_not_an_error(self) -> None:
        cancel_event = threading.Event()
        cancel_event.set()
        executor = FakeExecutor()
        result = HookRunner(executor).run_commands(["one"], HookKind.LAUNCH, HostTarget(Path(".")), cancel_event=cancel_event)
        self.assertTrue(result.cancelled)
        self.assertTrue(result.ok)
        self.assertEqual(executor.calls, [])

    def test_container_unavailable_is_fatal_for_create(self) -> None:
        executor = FakeExecutor(prepare_error=ContainerRuntimeError("找不到容器：box"))
        target = ContainerTarget(name="box", workdir="/workspace/app")
        result = HookRunner(executor).run_commands(["one"], HookKind.CREATE, target)
        self.assertIsInstance(result.error, HookContainerUnavailable)
        self.assertEqual(executor.calls, [])

    def test_container_unavailable_warns_for_launch(self) -> None:
        executor = FakeExecutor(prepare_error=ContainerRuntimeError("找不到容器：box"))
        target = ContainerTarget(name="box", workdir="/workspace/app")
        result = HookRunner(executor).run_commands(["one"], HookKind.LAUNCH, target)
        self.assertTrue(result.ok)
        self.assertIsInstance(result.warnings[0], HookContainerUnavailable)
        self.assertEqual(executor.calls, [])

    def test_container_target_runs_in_container(self) -> None:
        executor = FakeExecutor()
        target = ContainerTarget(name="box", workdir="/workspace/app", env={"A": "1"})
        HookRunner(executor).run(HooksSection(on_launch=["ls"]), HookKind.LAUNCH, target)
        self.assertEqual(executor.prepared, [target])
        self.assertEqual(executor.calls, [("ls", target)])

    def test_output_is_logged_per_session(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            data_dir = Path(temp_dir)
            executor = FakeExecutor({"bad": 2})
            runner = HookRunner(executor, data_dir=data_dir)
            runner.run_commands(["good", "bad"], HookKind.LAUNCH, HostTarget(Path(".")), session_id="sess-1")

            log_path = data_dir / "logs" / "sessions" / "sess-1.jsonl"
            lines = [json.loads(line) for line in log_path.read_text(encoding="utf-8").splitlines()]
            commands = [line for line in lines if line["event"] == "hook_command"]
            self.assertEqual([line["command"] for line in commands], ["good", "bad"])
            self.assertEqual(commands[1]["exit_code"], 2)
            self.assertEqual(commands[0]["stdout"], "out:good")
            failures = [line for line in lines if line["event"] == "hook_failed"]
            self.assertEqual(failures[0]["level"], "WARNING")
            self.assertEqual(lines[0]["session_id"], "sess-1")


class ShellCommandExecutorTests(unittest.TestCase):
    def test_host_command_uses_shell_in_project_dir(self) -> None:
        fake_run = MagicMock(return_value=subprocess.CompletedProcess(args=[], returncode=0, stdout="hi\n", stderr=""))
        executor = ShellCommandExecutor(runtime=MagicMock(), run_command=fake_run, shell="bash")
        output = executor.run("echo hi", HostTarget(Path("/tmp/project")))
        self.assertEqual(output.stdout, "hi\n")
        args, kwargs = fake_run.call_args
        self.assertEqual(args[0], ["bash", "-c", "echo hi"])
        self.assertEqual(kwargs["cwd"], "/tmp/project")

    def test_missing_shell_maps_to_127(self) -> None:
        fake_run = MagicMock(side_effect=FileNotFoundError("bash"))
        executor = ShellCommandExecutor(runtime=MagicMock(), run_command=fake_run, shell="bash")
        output = executor.run("echo hi", HostTarget(Path("/tmp")))
        self.assertEqual(output.returncode, 127)

    def test_invalid_utf8_output_is_replaced(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            executor = ShellCommandExecutor(runtime=MagicMock(), shell="sh")
            output = executor.run("printf '\\377\\376'", HostTarget(Path(temp_dir)))
            self.assertEqual(output.returncode, 0)
            self.assertIn("\ufffd", output.stdout)

            result = HookRunner(executor, data_dir=Path(temp_dir)).run_commands(
                ["printf '\\377'; exit 1"], HookKind.CREATE, HostTarget(Path(temp_dir)), session_id="sess-bytes"
            )
            self.assertIsInstance(result.error, HookNonZeroExit)
            self.assertEqual(result.commands_run, 1)

    def test_host_command_decodes_leniently(self) -> None:
        fake_run = MagicMock(return_value=subprocess.CompletedProcess(args=[], returncode=0, stdout="", stderr=""))
        executor = ShellCommandExecutor(runtime=MagicMock(), run_command=fake_run, shell="bash")
        executor.run("true", HostTarget(Path("/tmp")))
        self.assertEqual(fake_run.call_args.kwargs["errors"], "replace")

    def test_container_command_delegates_to_runtime(self) -> None:
        runtime = MagicMock()
        runtime.exec.return_value = CommandOutput(returncode=0)
        executor = ShellCommandExecutor(runtime=runtime, shell="bash")
        target = ContainerTarget(name="box", workdir="/workspace/app", env={"A": "1"})
        executor.prepare(target)
        executor.run("ls", target)
        runtime.ensure_running.assert_called_once_with("box")
        runtime.exec.assert_called_once_with("box", "ls", workdir="/workspace/app", env={"A": "1"})


if __name__ == "__main__":
    unittest.main()
