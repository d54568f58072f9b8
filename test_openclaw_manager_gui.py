import os
import tempfile
import unittest
from unittest.mock import MagicMock, patch

import openclaw_installer as installer

try:
    import openclaw_manager_gui as g
except ImportError:  # wxPython is not importable on this host
    g = None


class DummyFrame:
    def __init__(self) -> None:
        self.logs: list[str] = []
        self.statuses: list[str] = []
        self.gauges: list[int] = []
        self.busy: list[bool] = []
        self.environments: list[installer.EnvironmentStatus] = []
        self.worker_thread = None

    def log(self, message: str) -> None:
        self.logs.append(message)

    def set_status(self, text: str) -> None:
        self.statuses.append(text)

    def set_gauge(self, value: int) -> None:
        self.gauges.append(value)

    def set_busy(self, busy: bool) -> None:
        self.busy.append(busy)

    def set_environment(self, status: installer.EnvironmentStatus) -> None:
        self.environments.append(status)

    def _report(self, result: object) -> None:
        g.ManagerFrame._report(self, result)

    def _refresh_environment(self, action) -> None:
        g.ManagerFrame._refresh_environment(self, action)


class DummyLogCtrl:
    def __init__(self) -> None:
        self.appended: list[str] = []
        self._pos = 0

    def AppendText(self, text: str) -> None:
        self.appended.append(text)
        self._pos += len(text)

    def ShowPosition(self, _pos: int) -> None:
        return None

    def GetLastPosition(self) -> int:
        return self._pos


class DummyThreadState:
    def __init__(self, alive: bool) -> None:
        self._alive = alive

    def is_alive(self) -> bool:
        return self._alive


def make_status(**overrides) -> installer.EnvironmentStatus:
    values = dict(
        os=installer.HostOS.LINUX,
        interpreter_installed=True,
        interpreter_version="v22.11.0",
        interpreter_version_ok=True,
        app_installed=True,
        app_version="2026.1.29",
        config_dir_exists=True,
    )
    values.update(overrides)
    return installer.EnvironmentStatus(**values)


def find_action(key: str):
    return next(action for action in g.MANAGER_ACTIONS if action.key == key)


@unittest.skipIf(g is None, "wxPython is not installed")
class ResultFormattingTests(unittest.TestCase):
    def test_format_environment_lines(self) -> None:
        lines = g.format_environment_lines(make_status())
        self.assertIn("Node.js: v22.11.0", lines)
        self.assertIn("OpenClaw: 2026.1.29", lines)
        self.assertIn("Ready: Yes", lines)

        lines = g.format_environment_lines(
            make_status(interpreter_version="v20.1.0", interpreter_version_ok=False, app_installed=False, app_version=None)
        )
        self.assertIn("Node.js: v20.1.0 (v22 or newer required)", lines)
        self.assertIn("OpenClaw: Not installed", lines)
        self.assertIn("Ready: No", lines)

    def test_summarize_result_per_type(self) -> None:
        self.assertEqual(g.summarize_result(installer.InstallResult.ok("done")), (True, ["done"]))
        self.assertEqual(
            g.summarize_result(installer.InstallResult.failed("nope", "boom")),
            (False, ["nope", "Error: boom"]),
        )
        self.assertEqual(
            g.summarize_result(installer.UpdateInfo(True, "1.0.0", "1.0.1")),
            (True, ["Update available: 1.0.0 -> 1.0.1"]),
        )
        self.assertEqual(
            g.summarize_result(installer.UpdateInfo(False, "1.0.1", "1.0.1")),
            (True, ["OpenClaw 1.0.1 is up to date."]),
        )
        self.assertFalse(g.summarize_result(installer.UpdateInfo(False, None, None, "offline"))[0])
        self.assertEqual(g.summarize_result("Opened the installation terminal."), (True, ["Opened the installation terminal."]))


@unittest.skipIf(g is None, "wxPython is not installed")
class UiHandlerTests(unittest.TestCase):
    def test_report_updates_status_and_environment(self) -> None:
        frame = DummyFrame()
        status = make_status()
        g.ManagerFrame._report(frame, status)
        self.assertEqual(frame.environments, [status])
        self.assertEqual(frame.statuses, ["Complete"])

        frame = DummyFrame()
        g.ManagerFrame._report(frame, installer.InstallResult.failed("Install failed", "winget: offline"))
        self.assertEqual(frame.statuses, ["Failed"])
        self.assertIn("Error: winget: offline", frame.logs)

    def test_action_worker_runs_action_and_refreshes_environment(self) -> None:
        frame = DummyFrame()
        status = make_status()
        action = find_action("install_node")
        with (
            patch.object(g.installer, "install_interpreter", return_value=installer.InstallResult.ok("Node.js ready")) as install_mock,
            patch.object(g.installer, "check_environment", return_value=status),
        ):
            g.ManagerFrame._action_worker(frame, action)
        install_mock.assert_called_once_with(log=frame.log)
        self.assertIn("Node.js ready", frame.logs)
        self.assertEqual(frame.statuses, ["Complete"])
        self.assertEqual(frame.environments, [status])
        self.assertEqual(frame.gauges, [100])
        self.assertEqual(frame.busy, [False])

    def test_action_worker_skips_refresh_for_checks(self) -> None:
        frame = DummyFrame()
        with (
            patch.object(g.installer, "check_application_update", return_value=installer.UpdateInfo(False, "1.0.0", "1.0.0")),
            patch.object(g.installer, "check_environment") as check_mock,
        ):
            g.ManagerFrame._action_worker(frame, find_action("check_update"))
        check_mock.assert_not_called()
        self.assertEqual(frame.statuses, ["Complete"])

    def test_action_worker_logs_unexpected_errors(self) -> None:
        frame = DummyFrame()
        with patch.object(g.installer, "install_application", side_effect=RuntimeError("boom")):
            g.ManagerFrame._action_worker(frame, find_action("install_app"))
        self.assertIn("ERROR: boom", frame.logs)
        self.assertEqual(frame.statuses, ["Failed"])
        self.assertEqual(frame.busy, [False])

    def test_manual_terminal_actions_pass_target(self) -> None:
        with patch.object(g.installer, "open_manual_install_terminal", return_value="ok") as open_mock:
            find_action("manual_node").run(print)
            find_action("manual_app").run(print)
        self.assertEqual(open_mock.call_args_list[0].args[0], installer.Target.INTERPRETER)
        self.assertEqual(open_mock.call_args_list[1].args[0], installer.Target.APPLICATION)

    def test_every_action_dispatches_to_installer(self) -> None:
        expected = {
            "check": "check_environment",
            "install_node": "install_interpreter",
            "install_app": "install_application",
            "init_config": "init_application_config",
            "check_update": "check_application_update",
            "update_app": "update_application",
            "sync_app": "sync_application_from_source",
            "uninstall_app": "uninstall_application",
        }
        for key, name in expected.items():
            with patch.object(g.installer, name, return_value="ok") as op_mock:
                self.assertEqual(find_action(key).run(print), "ok")
            op_mock.assert_called_once_with(log=print)

    def test_start_action_ignores_when_worker_running(self) -> None:
        frame = DummyFrame()
        frame.worker_thread = DummyThreadState(alive=True)
        with patch.object(g.threading, "Thread") as thread_mock:
            g.ManagerFrame.start_action(frame, find_action("install_node"))
        thread_mock.assert_not_called()

    def test_start_action_respects_declined_confirmation(self) -> None:
        frame = DummyFrame()
        with (
            patch.object(g.wx, "MessageBox", return_value=g.wx.NO) as box_mock,
            patch.object(g.threading, "Thread") as thread_mock,
        ):
            g.ManagerFrame.start_action(frame, find_action("uninstall_app"))
        box_mock.assert_called_once()
        thread_mock.assert_not_called()

    def test_start_action_launches_worker_thread(self) -> None:
        frame = DummyFrame()
        frame._action_worker = MagicMock()
        thread = MagicMock()
        action = find_action("install_app")
        with patch.object(g.threading, "Thread", return_value=thread) as thread_mock:
            g.ManagerFrame.start_action(frame, action)
        self.assertEqual(thread_mock.call_args.kwargs["args"], (action,))
        self.assertTrue(thread_mock.call_args.kwargs["daemon"])
        thread.start.assert_called_once_with()
        self.assertEqual(frame.busy, [True])
        self.assertEqual(frame.statuses, ["Installing OpenClaw..."])

    def test_on_close_blocks_while_running(self) -> None:
        frame = DummyFrame()
        frame.worker_thread = DummyThreadState(alive=True)
        frame.Close = MagicMock()
        with patch.object(g.wx, "MessageBox") as box_mock:
            g.ManagerFrame.on_close(frame, None)
        box_mock.assert_called_once()
        frame.Close.assert_not_called()

        frame.worker_thread = DummyThreadState(alive=False)
        g.ManagerFrame.on_close(frame, None)
        frame.Close.assert_called_once_with()

    def test_append_log_writes_persistent_file(self) -> None:
        frame = DummyFrame()
        frame.log_ctrl = DummyLogCtrl()
        with tempfile.TemporaryDirectory() as tmp:
            frame._persistent_log_path = os.path.join(tmp, "manager.log")
            frame._persistent_log_write_warning_shown = False
            g.ManagerFrame._append_log(frame, "[install-node] hello")
            with open(frame._persistent_log_path, "r", encoding="utf-8") as f:
                self.assertEqual(f.read(), "[install-node] hello\n")
        self.assertEqual(frame.log_ctrl.appended, ["[install-node] hello\n"])

    def test_append_log_warns_once_when_file_is_unwritable(self) -> None:
        frame = DummyFrame()
        frame.log_ctrl = DummyLogCtrl()
        frame._persistent_log_path = "/definitely/missing/dir/manager.log"
        frame._persistent_log_write_warning_shown = False
        g.ManagerFrame._append_log(frame, "one")
        g.ManagerFrame._append_log(frame, "two")
        warnings = [text for text in frame.log_ctrl.appended if text.startswith("Log file write warning")]
        self.assertEqual(len(warnings), 1)


@unittest.skipIf(g is None, "wxPython is not installed")
class AppEntrypointTests(unittest.TestCase):
    def test_main_runs_app_loop(self) -> None:
        app = MagicMock()
        with patch.object(g, "ManagerApp", return_value=app) as app_cls:
            self.assertEqual(g.main(), 0)
        app_cls.assert_called_once_with(False)
        app.MainLoop.assert_called_once_with()


if __name__ == "__main__":  # pragma: no cover
    unittest.main(verbosity=2)
