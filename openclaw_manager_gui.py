import threading
import traceback
from dataclasses import dataclass
from typing import Callable, Optional

import wx

import openclaw_installer as installer
from openclaw_installer import (
    APP_LABEL,
    MIN_NODE_MAJOR,
    NODE_LABEL,
    EnvironmentStatus,
    InstallResult,
    Target,
    UpdateInfo,
    append_persistent_log_line,
    get_host_os,
    is_admin,
    is_windows,
    reset_manager_log,
)


@dataclass(frozen=True)
class ManagerAction:
    key: str
    label: str
    status: str
    run: Callable[[Callable[[str], None]], object]
    confirm: str = ""


def _manual_terminal(target: Target) -> Callable[[Callable[[str], None]], object]:
    def run(log: Callable[[str], None]) -> object:
        return installer.open_manual_install_terminal(target, log=log)
    return run


MANAGER_ACTIONS: tuple[ManagerAction, ...] = (
    ManagerAction("check", "&Check Environment", "Checking environment", lambda log: installer.check_environment(log=log)),
    ManagerAction(
        "install_node",
        f"Install {NODE_LABEL}",
        f"Installing {NODE_LABEL}",
        lambda log: installer.install_interpreter(log=log),
    ),
    ManagerAction(
        "install_app",
        f"Install {APP_LABEL}",
        f"Installing {APP_LABEL}",
        lambda log: installer.install_application(log=log),
    ),
    ManagerAction(
        "init_config",
        "Initialize Config",
        "Initializing configuration",
        lambda log: installer.init_application_config(log=log),
    ),
    ManagerAction(
        "check_update",
        "Check for &Updates",
        "Checking for updates",
        lambda log: installer.check_application_update(log=log),
    ),
    ManagerAction(
        "update_app",
        f"Update {APP_LABEL}",
        f"Updating {APP_LABEL}",
        lambda log: installer.update_application(log=log),
    ),
    ManagerAction(
        "sync_app",
        "Sync from GitHub",
        "Installing from GitHub",
        lambda log: installer.sync_application_from_source(log=log),
        confirm=f"Install the development version of {APP_LABEL} from GitHub? This replaces the released version.",
    ),
    ManagerAction(
        "uninstall_app",
        f"Uninstall {APP_LABEL}",
        f"Uninstalling {APP_LABEL}",
        lambda log: installer.uninstall_application(log=log),
        confirm=f"Stop the gateway and uninstall {APP_LABEL}? Your configuration directory is kept.",
    ),
    ManagerAction(
        "manual_node",
        f"{NODE_LABEL} Terminal...",
        "Opening installation terminal",
        _manual_terminal(Target.INTERPRETER),
    ),
    ManagerAction(
        "manual_app",
        f"{APP_LABEL} Terminal...",
        "Opening installation terminal",
        _manual_terminal(Target.APPLICATION),
    ),
)


def format_environment_lines(status: EnvironmentStatus) -> list[str]:
    if status.interpreter_installed:
        node_state = f"{status.interpreter_version}"
        if not status.interpreter_version_ok:
            node_state += f" (v{MIN_NODE_MAJOR} or newer required)"
    else:
        node_state = "Not installed"
    app_state = status.app_version if status.app_installed else "Not installed"
    return [
        f"Operating system: {status.os.value}",
        f"{NODE_LABEL}: {node_state}",
        f"{APP_LABEL}: {app_state}",
        f"Config directory: {'Present' if status.config_dir_exists else 'Missing'}",
        f"Ready: {'Yes' if status.ready else 'No'}",
    ]


def summarize_result(result: object) -> tuple[bool, list[str]]:
    if isinstance(result, InstallResult):
        lines = [result.message]
        if result.error:
            lines.append(f"Error: {result.error}")
        return (result.success, lines)
    if isinstance(result, UpdateInfo):
        if result.error:
            return (False, [f"Update check failed: {result.error}"])
        if result.update_available:
            return (True, [f"Update available: {result.current_version} -> {result.latest_version}"])
        return (True, [f"{APP_LABEL} {result.current_version} is up to date."])
    if isinstance(result, EnvironmentStatus):
        return (True, format_environment_lines(result))
    return (True, [str(result)])


class ManagerFrame(wx.Frame):
    def __init__(self) -> None:  # pragma: no cover
        super().__init__(None, title=f"OpenClaw Manager ({get_host_os().value})", size=(920, 720))
        self.worker_thread: Optional[threading.Thread] = None
        self.action_buttons: dict[str, wx.Button] = {}
        self._persistent_log_path: Optional[str] = None
        self._persistent_log_write_warning_shown = False
        self._reset_persistent_log_for_new_run()
        self._build_ui()
        self.Centre()
        self.start_action(MANAGER_ACTIONS[0])

    def _build_ui(self) -> None:  # pragma: no cover
        panel = wx.Panel(self)
        root = wx.BoxSizer(wx.VERTICAL)

        title = wx.StaticText(panel, label=f"Install and maintain {APP_LABEL}")
        title_font = title.GetFont()
        title_font.MakeBold()
        title_font.PointSize += 2
        title.SetFont(title_font)
        title.SetName("Manager Title")
        root.Add(title, 0, wx.ALL, 12)

        note = wx.StaticText(
            panel,
            label=(
                f"{APP_LABEL} needs {NODE_LABEL} {MIN_NODE_MAJOR} or newer. Install {NODE_LABEL} first, "
                f"then {APP_LABEL}, then initialize the configuration.\n"
                "If automatic installation fails, use a terminal button to finish the installation by hand."
            ),
        )
        note.Wrap(860)
        note.SetName("Instructions")
        root.Add(note, 0, wx.LEFT | wx.RIGHT | wx.BOTTOM, 12)

        admin_label_name = "Administrator" if is_windows() else "Root"
        self.admin_label = wx.StaticText(panel, label=f"{admin_label_name}: {'Yes' if is_admin() else 'No'}")
        self.admin_label.SetName("Admin Status")
        root.Add(self.admin_label, 0, wx.LEFT | wx.RIGHT | wx.BOTTOM, 12)

        box = wx.StaticBox(panel, label="Environment")
        box_sizer = wx.StaticBoxSizer(box, wx.VERTICAL)
        self.environment_label = wx.StaticText(box, label="Not checked yet.")
        self.environment_label.SetName("Environment Status")
        box_sizer.Add(self.environment_label, 0, wx.ALL, 6)
        root.Add(box_sizer, 0, wx.LEFT | wx.RIGHT | wx.EXPAND | wx.BOTTOM, 12)

        grid = wx.WrapSizer(wx.HORIZONTAL)
        for action in MANAGER_ACTIONS:
            btn = wx.Button(panel, label=action.label)
            btn.SetName(action.label.replace("&", ""))
            btn.Bind(wx.EVT_BUTTON, lambda _event, a=action: self.start_action(a))
            grid.Add(btn, 0, wx.RIGHT | wx.BOTTOM, 8)
            self.action_buttons[action.key] = btn
        root.Add(grid, 0, wx.LEFT | wx.RIGHT | wx.EXPAND | wx.BOTTOM, 12)

        close_row = wx.BoxSizer(wx.HORIZONTAL)
        close_row.AddStretchSpacer(1)
        self.close_btn = wx.Button(panel, label="C&lose")
        self.close_btn.Bind(wx.EVT_BUTTON, self.on_close)
        close_row.Add(self.close_btn, 0)
        root.Add(close_row, 0, wx.LEFT | wx.RIGHT | wx.EXPAND | wx.BOTTOM, 12)

        self.status_label = wx.StaticText(panel, label="Status: Ready")
        self.status_label.SetName("Current Status")
        root.Add(self.status_label, 0, wx.LEFT | wx.RIGHT | wx.BOTTOM, 8)

        self.gauge = wx.Gauge(panel, range=100, style=wx.GA_HORIZONTAL)
        self.gauge.SetValue(0)
        root.Add(self.gauge, 0, wx.LEFT | wx.RIGHT | wx.EXPAND | wx.BOTTOM, 12)

        log_label = wx.StaticText(panel, label="Log")
        log_label.SetName("Log Label")
        root.Add(log_label, 0, wx.LEFT | wx.RIGHT | wx.BOTTOM, 4)

        self.log_ctrl = wx.TextCtrl(
            panel,
            style=wx.TE_MULTILINE | wx.TE_READONLY | wx.TE_DONTWRAP | wx.HSCROLL | wx.TE_RICH2,
        )
        self.log_ctrl.SetName("Manager Log")
        self.log_ctrl.SetMinSize((-1, 260))
        root.Add(self.log_ctrl, 1, wx.LEFT | wx.RIGHT | wx.BOTTOM | wx.EXPAND, 12)

        panel.SetSizer(root)

    def log(self, message: str) -> None:
        wx.CallAfter(self._append_log, message)

    def _reset_persistent_log_for_new_run(self) -> None:
        self._persistent_log_path = reset_manager_log()
        self._persistent_log_write_warning_shown = False

    def _append_log(self, message: str) -> None:
        self.log_ctrl.AppendText(message + "\n")
        self.log_ctrl.ShowPosition(self.log_ctrl.GetLastPosition())
        err = append_persistent_log_line(getattr(self, "_persistent_log_path", None), message)
        if err and not getattr(self, "_persistent_log_write_warning_shown", False):
            self._persistent_log_write_warning_shown = True
            self.log_ctrl.AppendText(f"Log file write warning: {err}\n")

    def set_status(self, text: str) -> None:
        wx.CallAfter(self.status_label.SetLabel, f"Status: {text}")

    def set_gauge(self, value: int) -> None:
        value = max(0, min(100, value))
        wx.CallAfter(self.gauge.SetValue, value)

    def set_environment(self, status: EnvironmentStatus) -> None:
        wx.CallAfter(self.environment_label.SetLabel, "\n".join(format_environment_lines(status)))

    def set_busy(self, busy: bool) -> None:
        def _apply() -> None:
            for btn in self.action_buttons.values():
                btn.Enable(not busy)
            if busy:
                self.gauge.Pulse()
        wx.CallAfter(_apply)

    def on_close(self, _event: wx.CommandEvent) -> None:
        if self.worker_thread and self.worker_thread.is_alive():
            wx.MessageBox(
                "An operation is still running. Wait for it to finish before closing.",
                "Operation In Progress",
                wx.OK | wx.ICON_INFORMATION,
                self,
            )
            return
        self.Close()

    def start_action(self, action: ManagerAction) -> None:
        if self.worker_thread and self.worker_thread.is_alive():
            return
        if action.confirm:
            answer = wx.MessageBox(action.confirm, action.label.replace("&", ""), wx.YES_NO | wx.ICON_QUESTION, self)
            if answer != wx.YES:
                return

        self.set_status(f"{action.status}...")
        self.set_gauge(0)
        self.set_busy(True)
        self.worker_thread = threading.Thread(target=self._action_worker, args=(action,), daemon=True)
        self.worker_thread.start()

    def _action_worker(self, action: ManagerAction) -> None:
        try:
            self.log(f"== {action.status} ==")
            result = action.run(self.log)
            self._report(result)
            self._refresh_environment(action)
        except Exception as exc:
            self.log(f"ERROR: {exc}")
            self.log(traceback.format_exc().rstrip())
            self.set_status("Failed")
        finally:
            self.set_gauge(100)
            self.set_busy(False)

    def _report(self, result: object) -> None:
        succeeded, lines = summarize_result(result)
        for line in lines:
            self.log(line)
        if isinstance(result, EnvironmentStatus):
            self.set_environment(result)
        self.set_status("Complete" if succeeded else "Failed")

    def _refresh_environment(self, action: ManagerAction) -> None:
        if action.key in ("check", "check_update", "manual_node", "manual_app"):
            return
        self.set_environment(installer.check_environment())


class ManagerApp(wx.App):
    def OnInit(self) -> bool:
        frame = ManagerFrame()
        frame.Show()
        return True


def main() -> int:
    app = ManagerApp(False)
    app.MainLoop()
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
