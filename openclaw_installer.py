import ctypes
import functools
import os
import platform
import re
import shlex
import shutil
import subprocess
import sys
import threading
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Callable, Optional, TypeVar


CREATE_NO_WINDOW = 0x08000000

APP_LABEL = "OpenClaw"
APP_PACKAGE = "openclaw"
APP_COMMAND = "openclaw"
APP_REPO_URL = "https://github.com/openclaw/openclaw.git"
GITHUB_MIRROR_PREFIX = "https://ghproxy.com/"
NODE_LABEL = "Node.js"
MIN_NODE_MAJOR = 22
NODE_WINGET_ID = "OpenJS.NodeJS.LTS"
NODE_DOWNLOAD_URL = "https://nodejs.org/en/download"
NPM_MIRROR_REGISTRY = "https://registry.npmmirror.com"
NPM_DEFAULT_REGISTRY = "https://registry.npmjs.org"
NPM_QUIET_FLAGS = ["--no-fund", "--no-audit", "--no-update-notifier", "--loglevel", "error"]
NVM_INSTALL_URL = "https://raw.githubusercontent.com/nvm-sh/nvm/v0.40.1/install.sh"
FNM_INSTALL_URL = "https://fnm.vercel.app/install.ps1"
HOMEBREW_INSTALL_URL = "https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh"
NODESOURCE_DEB_SETUP_URL = f"https://deb.nodesource.com/setup_{MIN_NODE_MAJOR}.x"
NODESOURCE_RPM_SETUP_URL = f"https://rpm.nodesource.com/setup_{MIN_NODE_MAJOR}.x"

OFFLINE_PACKAGE_PREFIX = "node"
POST_INSTALL_SCRIPT = "lnode.js"
DEFAULT_SKILLS = ("browser", "files", "shell")
CONFIG_SUBDIRS = ("agents/main/sessions", "agents/main/agent", "credentials")
CONFIG_DIR_MODE = 0o700
GATEWAY_MODE = "local"
INSTALL_SETTLE_SECONDS = 2.0
GATEWAY_STOP_SETTLE_SECONDS = 0.5

CONFIG_DIR_ENV = "OPENCLAW_CONFIG_DIR"
TOOL_DIR_ENV = "OPENCLAW_MANAGER_TOOL_DIR"
MANAGER_STATE_DIR_NAME = "OpenClawManager"
MANAGER_LAST_RUN_LOG_FILE = "manager_last_run.log"
LINUX_TERMINALS = (
    ("gnome-terminal", "--"),
    ("konsole", "-e"),
    ("xfce4-terminal", "-x"),
    ("xterm", "-e"),
)

ARCH_FAMILY_PATTERNS = {
    "arm64": re.compile(r"arm64|aarch64"),
    "x64": re.compile(r"x64|x86_64|amd64|intel"),
    "x86": re.compile(r"x86(?!_64)|i[3-6]86|ia32"),
}
NODE_VERSION_RE = re.compile(r"^v\d+\.\d+")
LEADING_MARKER_RE = re.compile(r"^\D+")
LEADING_DIGITS_RE = re.compile(r"^\d+")

SHELL_PROFILE_PROBE = (
    'for rc in "$HOME/.profile" "$HOME/.bash_profile" "$HOME/.bashrc" "$HOME/.zshrc"; do '
    '[ -f "$rc" ] && . "$rc" >/dev/null 2>&1; '
    "done; "
    "node --version 2>/dev/null"
)
BREW_SHELLENV = (
    'if [ -x /opt/homebrew/bin/brew ]; then eval "$(/opt/homebrew/bin/brew shellenv)"; '
    'elif [ -x /usr/local/bin/brew ]; then eval "$(/usr/local/bin/brew shellenv)"; fi'
)

T = TypeVar("T")


class HostOS(str, Enum):
    WINDOWS = "windows"
    MACOS = "macos"
    LINUX = "linux"
    OTHER = "other"


class Target(str, Enum):
    INTERPRETER = "interpreter"
    APPLICATION = "application"


class StrategyKind(str, Enum):
    OFFLINE_PACKAGE = "offline_package"
    PACKAGE_MANAGER_PRIMARY = "package_manager_primary"
    PACKAGE_MANAGER_SECONDARY = "package_manager_secondary"
    MANUAL_TERMINAL = "manual_terminal"


OFFLINE_PACKAGE_EXTENSIONS = {
    HostOS.WINDOWS: ".msi",
    HostOS.MACOS: ".pkg",
}


@dataclass(frozen=True)
class EnvironmentStatus:
    os: HostOS
    interpreter_installed: bool
    interpreter_version: Optional[str]
    interpreter_version_ok: bool
    app_installed: bool
    app_version: Optional[str]
    config_dir_exists: bool

    @property
    def ready(self) -> bool:
        return self.interpreter_installed and self.interpreter_version_ok and self.app_installed

    def to_dict(self) -> dict[str, object]:
        data = asdict(self)
        data["os"] = self.os.value
        data["ready"] = self.ready
        return data


@dataclass(frozen=True)
class InstallResult:
    success: bool
    message: str
    error: Optional[str] = None

    def __post_init__(self) -> None:
        if self.success and self.error is not None:
            raise ValueError("A successful InstallResult cannot carry an error.")

    @classmethod
    def ok(cls, message: str) -> "InstallResult":
        return cls(success=True, message=message, error=None)

    @classmethod
    def failed(cls, message: str, error: Optional[str]) -> "InstallResult":
        return cls(success=False, message=message, error=error)

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class UpdateInfo:
    update_available: bool
    current_version: Optional[str]
    latest_version: Optional[str]
    error: Optional[str] = None

    def __post_init__(self) -> None:
        # Only meaningful when both sides are known.
        if self.update_available and not (self.current_version and self.latest_version):
            object.__setattr__(self, "update_available", False)

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class OfflineCandidate:
    filename: str
    path: str
    score: int


@dataclass(frozen=True)
class InstallStrategy:
    kind: StrategyKind
    label: str
    shell: str
    script: str = ""
    command: tuple[str, ...] = ()
    extra_path: tuple[str, ...] = ()


class CommandError(RuntimeError):
    def __init__(self, message: str, returncode: Optional[int] = None, output: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.output = output


def _discard_log(_message: str) -> None:
    return None


def is_windows() -> bool:
    return os.name == "nt"


def is_macos() -> bool:
    return sys.platform == "darwin"


def is_linux() -> bool:
    return sys.platform.startswith("linux")


def get_host_os() -> HostOS:
    if is_windows():
        return HostOS.WINDOWS
    if is_macos():
        return HostOS.MACOS
    if is_linux():
        return HostOS.LINUX
    return HostOS.OTHER


def get_host_arch() -> str:
    return platform.machine() or ""


def is_admin() -> bool:
    if not is_windows():
        geteuid = getattr(os, "geteuid", None)
        if callable(geteuid):
            try:
                return geteuid() == 0
            except OSError:
                return False
        return False
    try:
        return bool(ctypes.windll.shell32.IsUserAnAdmin())
    except Exception:
        return False


def subprocess_creationflags_kwargs() -> dict[str, int]:
    if is_windows():
        return {"creationflags": CREATE_NO_WINDOW}
    return {}


def read_linux_os_release() -> dict[str, str]:
    data: dict[str, str] = {}
    if not is_linux():
        return data
    try:
        with open("/etc/os-release", "r", encoding="utf-8") as f:
            for raw_line in f:
                line = raw_line.strip()
                if not line or "=" not in line or line.startswith("#"):
                    continue
                key, value = line.split("=", 1)
                data[key] = value.strip().strip('"').strip("'")
    except OSError:
        return {}
    return data


def detect_linux_distro_family() -> Optional[str]:
    if not is_linux():
        return None
    info = read_linux_os_release()
    values = [info.get("ID", ""), info.get("ID_LIKE", "")]
    haystack = " ".join(v.lower() for v in values if v)
    if any(token in haystack for token in ("ubuntu", "debian")):
        return "debian"
    if any(token in haystack for token in ("fedora", "rhel", "centos")):
        return "fedora"
    if "arch" in haystack:
        return "arch"
    return None


def normalize_path_for_compare(path: str) -> str:
    expanded = os.path.expandvars(path.strip())
    normalized = os.path.normpath(expanded)
    return os.path.normcase(normalized)


def dedupe_preserve_order(values: list[str]) -> list[str]:
    unique: list[str] = []
    seen: set[str] = set()
    for value in values:
        if value not in seen:
            unique.append(value)
            seen.add(value)
    return unique


def powershell_single_quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def escape_applescript_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def read_text_file_quietly(path: str) -> Optional[str]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read()
    except (OSError, UnicodeDecodeError):
        return None


def list_dir_quietly(path: str) -> list[str]:
    try:
        return os.listdir(path)
    except OSError:
        return []


def write_text_file(path: str, content: str) -> None:
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        f.write(content)


def get_config_dir() -> str:
    override = os.environ.get(CONFIG_DIR_ENV)
    if override:
        return os.path.expanduser(override)
    return os.path.join(os.path.expanduser("~"), ".openclaw")


def get_manager_state_directory() -> str:
    if is_windows():
        local_app = os.environ.get("LocalAppData")
        if local_app:
            return os.path.join(local_app, MANAGER_STATE_DIR_NAME)
        return os.path.join(os.path.expanduser("~"), "AppData", "Local", MANAGER_STATE_DIR_NAME)
    if is_macos():
        return os.path.join(os.path.expanduser("~"), "Library", "Application Support", MANAGER_STATE_DIR_NAME)
    xdg_state = os.environ.get("XDG_STATE_HOME")
    if xdg_state:
        return os.path.join(xdg_state, MANAGER_STATE_DIR_NAME)
    return os.path.join(os.path.expanduser("~"), ".local", "state", MANAGER_STATE_DIR_NAME)


def get_manager_log_path() -> str:
    return os.path.join(get_manager_state_directory(), MANAGER_LAST_RUN_LOG_FILE)


def reset_manager_log() -> Optional[str]:
    path = get_manager_log_path()
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8", newline="\n") as f:
            started = time.strftime("%Y-%m-%d %H:%M:%S")
            f.write(f"OpenClaw Manager log started: {started}\n")
        return path
    except OSError:
        return None


def append_persistent_log_line(path: Optional[str], message: str) -> Optional[str]:
    if not path:
        return None
    try:
        with open(path, "a", encoding="utf-8", newline="\n") as f:
            f.write(message + "\n")
        return None
    except OSError as exc:
        return str(exc)


def is_probably_windows_errno_exit_code(code: int) -> bool:
    # npm on Windows sometimes returns negative errno values reinterpreted as unsigned exit codes.
    return code >= 0xFFFF0000


def format_exit_code(code: int) -> str:
    if not is_probably_windows_errno_exit_code(code):
        return str(code)
    signed = code - (1 << 32)
    return f"{code} (Windows errno {signed})"


def log_command_output(output: str, log: Callable[[str], None], tag: str) -> None:
    for line in output.splitlines():
        text = line.rstrip()
        if text:
            log(f"[{tag}] {text}")


# Command execution


def build_command_env(extra_path: Optional[list[str]] = None) -> dict[str, str]:
    env = os.environ.copy()
    dirs = [d for d in (extra_path or []) if d]
    if dirs:
        env["PATH"] = os.pathsep.join(dirs) + os.pathsep + env.get("PATH", "")
    env["npm_config_update_notifier"] = "false"
    return env


def run_command_output(
    program: str,
    args: list[str],
    env: Optional[dict[str, str]] = None,
    cwd: Optional[str] = None,
) -> str:
    try:
        completed = subprocess.run(
            [program, *args],
            capture_output=True,
            stdin=subprocess.DEVNULL,
            text=True,
            encoding="utf-8",
            errors="replace",
            env=env,
            cwd=cwd,
            **subprocess_creationflags_kwargs(),
        )
    except OSError as exc:
        raise CommandError(f"Unable to run {program}: {exc}") from exc
    if completed.returncode != 0:
        detail = (completed.stderr or completed.stdout or "").strip()
        message = f"{os.path.basename(program)} failed with exit code {format_exit_code(completed.returncode)}"
        if detail:
            message += f": {detail}"
        raise CommandError(message, completed.returncode, completed.stdout or "")
    return completed.stdout or ""


def run_bash_output(script: str, env: Optional[dict[str, str]] = None) -> str:
    return run_command_output("bash", ["-c", script], env=env)


def run_powershell_output(script: str, env: Optional[dict[str, str]] = None) -> str:
    return run_command_output(
        "powershell",
        ["-NoProfile", "-ExecutionPolicy", "Bypass", "-Command", script],
        env=env,
    )


def run_cmd_output(command_line: str, env: Optional[dict[str, str]] = None) -> str:
    cmd_exe = os.environ.get("ComSpec", "cmd.exe")
    return run_command_output(cmd_exe, ["/C", command_line], env=env)


def quote_windows_argument(value: str) -> str:
    if " " in value and not value.startswith('"'):
        return f'"{value}"'
    return value


def build_windows_elevated_script(command: list[str]) -> str:
    program, *args = command
    arg_list = ", ".join(powershell_single_quote(quote_windows_argument(a)) for a in args)
    return (
        "$ErrorActionPreference = 'Stop'; "
        + f"$p = Start-Process -FilePath {powershell_single_quote(program)} "
        + f"-ArgumentList @({arg_list}) -Wait -PassThru -Verb RunAs; "
        + "exit $p.ExitCode"
    )


def build_macos_elevated_script(command: list[str]) -> str:
    shell_command = shlex.join(command)
    return f'do shell script "{escape_applescript_string(shell_command)}" with administrator privileges'


def run_elevated(command: list[str]) -> str:
    if not command:
        raise CommandError("No command given for elevated execution.")
    if is_windows():
        return run_powershell_output(build_windows_elevated_script(command))
    if is_macos():
        return run_command_output("osascript", ["-e", build_macos_elevated_script(command)])
    if is_admin():
        return run_command_output(command[0], list(command[1:]))
    return run_command_output("pkexec", list(command))


# Version handling


def parse_version(text: Optional[str]) -> tuple[int, int, int]:
    if not text:
        return (0, 0, 0)
    stripped = LEADING_MARKER_RE.sub("", text.strip())
    parts: list[int] = []
    for piece in stripped.split(".")[:3]:
        match = LEADING_DIGITS_RE.match(piece)
        parts.append(int(match.group()) if match else 0)
    while len(parts) < 3:
        parts.append(0)
    return (parts[0], parts[1], parts[2])


def compare_versions(current: str, latest: str) -> bool:
    """Return True when ``latest`` is newer than ``current``."""
    return parse_version(latest) > parse_version(current)


def get_version_major(version: Optional[str]) -> Optional[int]:
    if not version:
        return None
    stripped = LEADING_MARKER_RE.sub("", version.strip())
    match = LEADING_DIGITS_RE.match(stripped)
    if not match:
        return None
    return int(match.group())


def is_interpreter_version_ok(version: Optional[str]) -> bool:
    major = get_version_major(version)
    return major is not None and major >= MIN_NODE_MAJOR


# Offline package selection


def normalize_arch(arch: str) -> str:
    lowered = arch.lower()
    if ARCH_FAMILY_PATTERNS["arm64"].search(lowered):
        return "arm64"
    if ARCH_FAMILY_PATTERNS["x86"].fullmatch(lowered):
        return "x86"
    return "x64"


def is_offline_candidate(filename: str, host_os: HostOS) -> bool:
    extension = OFFLINE_PACKAGE_EXTENSIONS.get(host_os)
    if not extension:
        return False
    lowered = filename.lower()
    return lowered.startswith(OFFLINE_PACKAGE_PREFIX) and lowered.endswith(extension)


def score_offline_candidate(filename: str, arch: str) -> int:
    lowered = filename.lower()
    family = normalize_arch(arch)
    score = 0
    if ARCH_FAMILY_PATTERNS[family].search(lowered):
        score += 30
    if any(pattern.search(lowered) for name, pattern in ARCH_FAMILY_PATTERNS.items() if name != family):
        score -= 10
    if "lts" in lowered:
        score += 5
    if re.search(r"v\d", lowered):
        score += 1
    return score


def find_offline_package(
    tool_dir: str,
    host_os: HostOS,
    arch: Optional[str] = None,
) -> Optional[OfflineCandidate]:
    host_arch = arch if arch is not None else get_host_arch()
    candidates: list[OfflineCandidate] = []
    for name in list_dir_quietly(tool_dir):
        if not is_offline_candidate(name, host_os):
            continue
        path = os.path.join(tool_dir, name)
        if not os.path.isfile(path):
            continue
        candidates.append(OfflineCandidate(filename=name, path=path, score=score_offline_candidate(name, host_arch)))
    if not candidates:
        return None
    candidates.sort(key=lambda c: (c.score, c.filename), reverse=True)
    return candidates[0]


def get_tool_dir_candidates() -> list[str]:
    bases: list[str] = []
    if getattr(sys, "frozen", False):
        bases.append(os.path.dirname(os.path.abspath(sys.executable)))
    if sys.argv and sys.argv[0]:
        bases.append(os.path.dirname(os.path.abspath(sys.argv[0])))
    bases.append(os.path.dirname(os.path.abspath(__file__)))

    candidates: list[str] = []
    override = os.environ.get(TOOL_DIR_ENV)
    if override:
        candidates.append(override)
    for base in dedupe_preserve_order(bases):
        candidates.append(os.path.join(base, "tool"))
        candidates.append(os.path.join(base, "resources", "tool"))
        candidates.append(os.path.normpath(os.path.join(base, "..", "Resources", "tool")))
    cwd = os.getcwd()
    candidates.append(os.path.join(cwd, "tool"))
    candidates.append(os.path.normpath(os.path.join(cwd, "..", "tool")))
    return dedupe_preserve_order(candidates)


def get_tool_dir() -> Optional[str]:
    for candidate in get_tool_dir_candidates():
        if os.path.isdir(candidate):
            return candidate
    return None


# Node.js location probing


class PathCandidates:
    """Ordered executable locations.

    Fixed locations are added in fallback order while the probe runs; the
    locations discovered from version-manager state are preferred and end up
    in front, in the order they were preferred. Duplicates keep their first,
    highest-priority position.
    """

    def __init__(self) -> None:
        self._preferred: list[str] = []
        self._fallback: list[str] = []

    def add(self, path: str) -> None:
        if path:
            self._fallback.append(path)

    def prefer(self, path: str) -> None:
        if path:
            self._preferred.append(path)

    def paths(self) -> list[str]:
        ordered: list[str] = []
        seen: set[str] = set()
        for path in self._preferred + self._fallback:
            norm = normalize_path_for_compare(path)
            if norm in seen:
                continue
            ordered.append(path)
            seen.add(norm)
        return ordered


def list_nvm_versions(nvm_dir: str) -> list[str]:
    versions_dir = os.path.join(nvm_dir, "versions", "node")
    names = [name for name in list_dir_quietly(versions_dir) if name.startswith("v")]
    return sorted(names, key=parse_version, reverse=True)


def resolve_nvm_alias(nvm_dir: str, alias: str, depth: int = 0) -> Optional[str]:
    alias = alias.strip()
    if not alias or depth > 3:
        return None
    bare = alias[1:] if alias.startswith("v") else alias
    if re.fullmatch(r"\d+\.\d+\.\d+", bare):
        return "v" + bare
    installed = list_nvm_versions(nvm_dir)
    if re.fullmatch(r"\d+(\.\d+)?", bare):
        for name in installed:
            if name[1:] == bare or name[1:].startswith(bare + "."):
                return name
        return None
    if alias in ("node", "stable"):
        return installed[0] if installed else None
    nested = read_text_file_quietly(os.path.join(nvm_dir, "alias", *alias.split("/")))
    if nested:
        return resolve_nvm_alias(nvm_dir, nested, depth + 1)
    return None


def get_unix_node_paths() -> list[str]:
    candidates = PathCandidates()
    home = os.path.expanduser("~")

    candidates.add("/opt/homebrew/bin/node")
    candidates.add("/usr/local/bin/node")
    candidates.add("/usr/bin/node")
    candidates.add(f"/opt/homebrew/opt/node@{MIN_NODE_MAJOR}/bin/node")
    candidates.add(f"/usr/local/opt/node@{MIN_NODE_MAJOR}/bin/node")

    nvm_dir = os.environ.get("NVM_DIR") or os.path.join(home, ".nvm")
    for version in list_nvm_versions(nvm_dir):
        candidates.add(os.path.join(nvm_dir, "versions", "node", version, "bin", "node"))

    fnm_dirs = [os.environ.get("FNM_DIR", ""), os.path.join(home, ".fnm"), os.path.join(home, ".local", "share", "fnm")]
    for fnm_dir in fnm_dirs:
        if fnm_dir:
            candidates.add(os.path.join(fnm_dir, "aliases", "default", "bin", "node"))

    volta_home = os.environ.get("VOLTA_HOME") or os.path.join(home, ".volta")
    candidates.add(os.path.join(volta_home, "bin", "node"))
    asdf_dir = os.environ.get("ASDF_DATA_DIR") or os.path.join(home, ".asdf")
    candidates.add(os.path.join(asdf_dir, "shims", "node"))
    candidates.add(os.path.join(home, ".local", "share", "mise", "shims", "node"))

    nvm_bin = os.environ.get("NVM_BIN")
    if nvm_bin:
        candidates.prefer(os.path.join(nvm_bin, "node"))
    fnm_multishell = os.environ.get("FNM_MULTISHELL_PATH")
    if fnm_multishell:
        candidates.prefer(os.path.join(fnm_multishell, "bin", "node"))
    default_alias = read_text_file_quietly(os.path.join(nvm_dir, "alias", "default"))
    if default_alias:
        version = resolve_nvm_alias(nvm_dir, default_alias)
        if version:
            candidates.prefer(os.path.join(nvm_dir, "versions", "node", version, "bin", "node"))

    return candidates.paths()


def read_nvm_windows_current(nvm_home: str) -> Optional[str]:
    content = read_text_file_quietly(os.path.join(nvm_home, "settings.txt"))
    if not content:
        return None
    for line in content.splitlines():
        if line.startswith("current:"):
            version = line[len("current:"):].strip()
            if version:
                return version if version.startswith("v") else "v" + version
    return None


def get_windows_node_paths() -> list[str]:
    candidates = PathCandidates()
    home = os.path.expanduser("~")
    program_files = os.environ.get("ProgramFiles", r"C:\Program Files")
    program_files_x86 = os.environ.get("ProgramFiles(x86)", r"C:\Program Files (x86)")
    program_data = os.environ.get("ProgramData", r"C:\ProgramData")
    appdata = os.environ.get("AppData") or os.path.join(home, "AppData", "Roaming")
    local_app = os.environ.get("LocalAppData") or os.path.join(home, "AppData", "Local")

    candidates.add(os.path.join(program_files, "nodejs", "node.exe"))
    candidates.add(os.path.join(program_files_x86, "nodejs", "node.exe"))
    candidates.add(r"C:\nvm4w\nodejs\node.exe")
    candidates.add(os.path.join(appdata, "nvm", "current", "node.exe"))
    candidates.add(os.path.join(appdata, "fnm", "aliases", "default", "node.exe"))
    candidates.add(os.path.join(local_app, "fnm", "aliases", "default", "node.exe"))
    candidates.add(os.path.join(home, ".fnm", "aliases", "default", "node.exe"))
    candidates.add(os.path.join(local_app, "Volta", "bin", "node.exe"))
    candidates.add(os.path.join(home, "scoop", "apps", "nodejs", "current", "node.exe"))
    candidates.add(os.path.join(home, "scoop", "apps", "nodejs-lts", "current", "node.exe"))
    candidates.add(os.path.join(program_data, "chocolatey", "lib", "nodejs", "tools", "node.exe"))

    nvm_symlink = os.environ.get("NVM_SYMLINK")
    if nvm_symlink:
        candidates.prefer(os.path.join(nvm_symlink, "node.exe"))
    fnm_multishell = os.environ.get("FNM_MULTISHELL_PATH")
    if fnm_multishell:
        candidates.prefer(os.path.join(fnm_multishell, "node.exe"))
    nvm_home = os.environ.get("NVM_HOME")
    if nvm_home:
        version = read_nvm_windows_current(nvm_home)
        if version:
            candidates.prefer(os.path.join(nvm_home, version, "node.exe"))

    return candidates.paths()


def get_node_candidate_paths(host_os: Optional[HostOS] = None) -> list[str]:
    host = host_os or get_host_os()
    if host == HostOS.WINDOWS:
        return get_windows_node_paths()
    return get_unix_node_paths()


# Detection


def extract_node_version(output: str) -> Optional[str]:
    for line in output.splitlines():
        text = line.strip()
        if NODE_VERSION_RE.match(text):
            return text
    return None


def _probe_node(program: str, args: list[str]) -> Optional[str]:
    try:
        return extract_node_version(run_command_output(program, args))
    except CommandError:
        return None


def get_node_version(log: Callable[[str], None] = _discard_log) -> Optional[str]:
    try:
        if is_windows():
            output = run_cmd_output("node --version")
        else:
            output = run_command_output("node", ["--version"])
        version = extract_node_version(output)
    except CommandError:
        version = None
    if version:
        log(f"[check] Found {NODE_LABEL} on PATH: {version}")
        return version

    for path in get_node_candidate_paths():
        if not os.path.isfile(path):
            continue
        version = _probe_node(path, ["--version"])
        if version:
            log(f"[check] Found {NODE_LABEL} at {path}: {version}")
            return version

    if not is_windows():
        try:
            version = extract_node_version(run_bash_output(SHELL_PROFILE_PROBE))
        except CommandError:
            version = None
        if version:
            log(f"[check] Found {NODE_LABEL} through shell startup files: {version}")
            return version
    return None


def resolve_node_executable() -> Optional[str]:
    for name in ("node.exe", "node") if is_windows() else ("node",):
        path = shutil.which(name)
        if path:
            return path
    for path in get_node_candidate_paths():
        if os.path.isfile(path):
            return path
    return None


def get_app_bin_dirs(node_path: Optional[str]) -> list[str]:
    dirs: list[str] = []
    if node_path:
        dirs.append(os.path.dirname(node_path))
    home = os.path.expanduser("~")
    if is_windows():
        appdata = os.environ.get("AppData") or os.path.join(home, "AppData", "Roaming")
        dirs.append(os.path.join(appdata, "npm"))
    else:
        dirs.append(os.path.join(home, ".npm-global", "bin"))
        dirs.append("/usr/local/bin")
        dirs.append("/opt/homebrew/bin")

    unique: list[str] = []
    seen: set[str] = set()
    for d in dirs:
        if not d or not os.path.isdir(d):
            continue
        norm = normalize_path_for_compare(d)
        if norm not in seen:
            unique.append(d)
            seen.add(norm)
    return unique


def find_app_executable(node_path: Optional[str] = None) -> Optional[str]:
    names = (f"{APP_COMMAND}.cmd", APP_COMMAND) if is_windows() else (APP_COMMAND,)
    for name in names:
        path = shutil.which(name)
        if path:
            return path
    for d in get_app_bin_dirs(node_path):
        for name in names:
            candidate = os.path.join(d, name)
            if os.path.isfile(candidate):
                return candidate
    return None


def node_path_dirs(node_path: Optional[str]) -> list[str]:
    return [os.path.dirname(node_path)] if node_path else []


def run_app(args: list[str]) -> str:
    node_path = resolve_node_executable()
    app_exe = find_app_executable(node_path)
    if not app_exe:
        raise CommandError(f"{APP_COMMAND} was not found.")
    env = build_command_env(node_path_dirs(node_path))
    if is_windows() and app_exe.lower().endswith(".cmd"):
        return run_cmd_output(subprocess.list2cmdline([app_exe, *args]), env=env)
    return run_command_output(app_exe, args, env=env)


def first_nonempty_line(output: str) -> Optional[str]:
    for line in output.splitlines():
        text = line.strip()
        if text:
            return text
    return None


def get_app_version() -> Optional[str]:
    try:
        return first_nonempty_line(run_app(["--version"]))
    except CommandError:
        return None


# Installation strategies


def offline_interpreter_strategy(host_os: HostOS, candidate: OfflineCandidate) -> InstallStrategy:
    if host_os == HostOS.WINDOWS:
        command = ("msiexec.exe", "/i", candidate.path, "/qn", "/norestart")
    elif host_os == HostOS.MACOS:
        command = ("installer", "-pkg", candidate.path, "-target", "/")
    else:
        raise ValueError(f"No offline installer handler for {host_os.value}.")
    return InstallStrategy(
        kind=StrategyKind.OFFLINE_PACKAGE,
        label=f"offline package {candidate.filename}",
        shell="elevated",
        command=command,
    )


def windows_node_strategies() -> list[InstallStrategy]:
    winget_script = "\n".join(
        [
            "$ErrorActionPreference = 'Stop'",
            "if (-not (Get-Command winget -ErrorAction SilentlyContinue)) { Write-Error 'winget was not found.'; exit 1 }",
            f"winget install --id {NODE_WINGET_ID} -e --accept-source-agreements --accept-package-agreements --silent --disable-interactivity",
            "exit $LASTEXITCODE",
        ]
    )
    fnm_script = "\n".join(
        [
            "$ErrorActionPreference = 'Stop'",
            "$env:FNM_DIR = \"$env:USERPROFILE\\.fnm\"",
            "if (-not (Get-Command fnm -ErrorAction SilentlyContinue)) {",
            f"    Invoke-Expression (Invoke-RestMethod {powershell_single_quote(FNM_INSTALL_URL)})",
            "}",
            "$env:Path = \"$env:FNM_DIR;$env:Path\"",
            f"fnm install {MIN_NODE_MAJOR}",
            f"fnm default {MIN_NODE_MAJOR}",
            "exit $LASTEXITCODE",
        ]
    )
    return [
        InstallStrategy(StrategyKind.PACKAGE_MANAGER_PRIMARY, "winget", "powershell", script=winget_script),
        InstallStrategy(StrategyKind.PACKAGE_MANAGER_SECONDARY, "fnm", "powershell", script=fnm_script),
    ]


def nvm_install_script() -> str:
    return "\n".join(
        [
            'export NVM_DIR="${NVM_DIR:-$HOME/.nvm}"',
            'if [ ! -s "$NVM_DIR/nvm.sh" ]; then',
            f"    curl -fsSL {NVM_INSTALL_URL} | PROFILE=/dev/null bash || exit 1",
            "fi",
            '. "$NVM_DIR/nvm.sh"',
            f"nvm install {MIN_NODE_MAJOR}",
            f"nvm alias default {MIN_NODE_MAJOR}",
        ]
    )


def macos_node_strategies() -> list[InstallStrategy]:
    brew_script = "\n".join(
        [
            BREW_SHELLENV,
            "command -v brew >/dev/null 2>&1 || { echo 'Homebrew was not found.' >&2; exit 1; }",
            f"brew install node@{MIN_NODE_MAJOR} || exit 1",
            f"brew link --overwrite --force node@{MIN_NODE_MAJOR}",
        ]
    )
    return [
        InstallStrategy(StrategyKind.PACKAGE_MANAGER_PRIMARY, "Homebrew", "bash", script=brew_script),
        InstallStrategy(StrategyKind.PACKAGE_MANAGER_SECONDARY, "nvm", "bash", script=nvm_install_script()),
    ]


def linux_nodesource_script(family: Optional[str]) -> str:
    if family == "debian":
        lines = [f"curl -fsSL {NODESOURCE_DEB_SETUP_URL} | bash -", "apt-get install -y nodejs"]
    elif family == "fedora":
        lines = [
            f"curl -fsSL {NODESOURCE_RPM_SETUP_URL} | bash -",
            "if command -v dnf >/dev/null 2>&1; then dnf install -y nodejs; else yum install -y nodejs; fi",
        ]
    elif family == "arch":
        lines = ["pacman -Sy --noconfirm nodejs npm"]
    else:
        lines = [
            "if command -v apt-get >/dev/null 2>&1; then",
            f"    curl -fsSL {NODESOURCE_DEB_SETUP_URL} | bash - && apt-get install -y nodejs",
            "elif command -v dnf >/dev/null 2>&1; then",
            f"    curl -fsSL {NODESOURCE_RPM_SETUP_URL} | bash - && dnf install -y nodejs",
            "elif command -v yum >/dev/null 2>&1; then",
            f"    curl -fsSL {NODESOURCE_RPM_SETUP_URL} | bash - && yum install -y nodejs",
            "elif command -v pacman >/dev/null 2>&1; then",
            "    pacman -Sy --noconfirm nodejs npm",
            "else",
            "    echo 'No supported package manager was found.' >&2",
            "    exit 1",
            "fi",
        ]
    return "\n".join(["set -e", *lines])


def linux_node_strategies() -> list[InstallStrategy]:
    script = linux_nodesource_script(detect_linux_distro_family())
    return [
        InstallStrategy(
            StrategyKind.PACKAGE_MANAGER_PRIMARY,
            "NodeSource package",
            "elevated",
            command=("bash", "-c", script),
        ),
        InstallStrategy(StrategyKind.PACKAGE_MANAGER_SECONDARY, "nvm", "bash", script=nvm_install_script()),
    ]


NODE_STRATEGY_BUILDERS: dict[HostOS, Callable[[], list[InstallStrategy]]] = {
    HostOS.WINDOWS: windows_node_strategies,
    HostOS.MACOS: macos_node_strategies,
    HostOS.LINUX: linux_node_strategies,
}


def build_interpreter_strategies(
    host_os: HostOS,
    log: Callable[[str], None] = _discard_log,
    arch: Optional[str] = None,
) -> list[InstallStrategy]:
    builder = NODE_STRATEGY_BUILDERS.get(host_os)
    if builder is None:
        return []
    strategies: list[InstallStrategy] = []
    if host_os in OFFLINE_PACKAGE_EXTENSIONS:
        tool_dir = get_tool_dir()
        if tool_dir:
            log(f"[install-node] Checking offline packages in {tool_dir}")
            candidate = find_offline_package(tool_dir, host_os, arch)
            if candidate:
                log(f"[install-node] Found offline package: {candidate.filename} (score {candidate.score})")
                strategies.append(offline_interpreter_strategy(host_os, candidate))
        else:
            log("[install-node] No offline package directory found; using online installers.")
    strategies.extend(builder())
    return strategies


def npm_command_line(args: list[str]) -> str:
    return " ".join(["npm", *NPM_QUIET_FLAGS, *args])


def npm_strategy(kind: StrategyKind, label: str, args: list[str], node_dirs: list[str]) -> InstallStrategy:
    return InstallStrategy(
        kind=kind,
        label=label,
        shell="cmd" if is_windows() else "bash",
        script=npm_command_line(args),
        extra_path=tuple(node_dirs),
    )


def registry_install_strategies(node_dirs: list[str]) -> list[InstallStrategy]:
    package = f"{APP_PACKAGE}@latest"
    return [
        npm_strategy(
            StrategyKind.PACKAGE_MANAGER_PRIMARY,
            "npm (registry mirror)",
            ["install", "-g", package, "--unsafe-perm", f"--registry={NPM_MIRROR_REGISTRY}"],
            node_dirs,
        ),
        npm_strategy(
            StrategyKind.PACKAGE_MANAGER_SECONDARY,
            "npm (default registry)",
            ["install", "-g", package, "--unsafe-perm", f"--registry={NPM_DEFAULT_REGISTRY}"],
            node_dirs,
        ),
    ]


def source_install_strategies(node_dirs: list[str]) -> list[InstallStrategy]:
    return [
        npm_strategy(
            StrategyKind.PACKAGE_MANAGER_PRIMARY,
            "GitHub mirror",
            ["install", "-g", f"git+{GITHUB_MIRROR_PREFIX}{APP_REPO_URL}"],
            node_dirs,
        ),
        npm_strategy(
            StrategyKind.PACKAGE_MANAGER_SECONDARY,
            "GitHub direct",
            ["install", "-g", f"git+{APP_REPO_URL}"],
            node_dirs,
        ),
    ]


def execute_strategy(strategy: InstallStrategy) -> str:
    env = build_command_env(list(strategy.extra_path)) if strategy.extra_path else None
    if strategy.shell == "bash":
        return run_bash_output(strategy.script, env=env)
    if strategy.shell == "powershell":
        return run_powershell_output(strategy.script, env=env)
    if strategy.shell == "cmd":
        return run_cmd_output(strategy.script, env=env)
    if strategy.shell == "elevated":
        return run_elevated(list(strategy.command))
    raise CommandError(f"Unsupported strategy shell: {strategy.shell}")


def run_strategy_chain(
    strategies: list[InstallStrategy],
    verify: Callable[[], bool],
    log: Callable[[str], None],
    tag: str,
    settle_seconds: float = INSTALL_SETTLE_SECONDS,
    require_command_success: bool = False,
) -> tuple[Optional[InstallStrategy], list[str]]:
    """Run install tiers in order until one is verified.

    With ``require_command_success`` a tier whose command fails is never
    verified; used when the target is already installed, so detection alone
    cannot tell a failed reinstall from a successful one.
    """
    errors: list[str] = []
    for strategy in strategies:
        log(f"[{tag}] Trying {strategy.kind.value}: {strategy.label}")
        command_error: Optional[str] = None
        try:
            output = execute_strategy(strategy)
            log_command_output(output, log, tag)
        except CommandError as exc:
            command_error = str(exc)
            log(f"[{tag}] {strategy.label} failed: {command_error}")
            if require_command_success:
                errors.append(f"{strategy.label}: {command_error}")
                continue
        time.sleep(settle_seconds)
        if verify():
            log(f"[{tag}] Verified installation after {strategy.label}.")
            return (strategy, errors)
        if command_error is None:
            command_error = "finished, but the installation could not be detected"
            log(f"[{tag}] {strategy.label} {command_error}.")
        errors.append(f"{strategy.label}: {command_error}")
    return (None, errors)


def _attempt_best_effort(name: str, task: Callable[[], object]) -> Optional[str]:
    try:
        task()
        return None
    except Exception as exc:
        return f"{name}: {exc}"


def run_best_effort(
    tasks: list[tuple[str, Callable[[], object]]],
    log: Callable[[str], None],
    tag: str,
) -> list[str]:
    failures = [failure for failure in (_attempt_best_effort(name, task) for name, task in tasks) if failure]
    for failure in failures:
        log(f"[{tag}] Ignored failure: {failure}")
    return failures


# Operation guards


_operation_locks: dict[Target, threading.Lock] = {
    Target.INTERPRETER: threading.Lock(),
    Target.APPLICATION: threading.Lock(),
}


def serialized(target: Target) -> Callable[[Callable[..., InstallResult]], Callable[..., InstallResult]]:
    def decorator(func: Callable[..., InstallResult]) -> Callable[..., InstallResult]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> InstallResult:
            lock = _operation_locks[target]
            if not lock.acquire(blocking=False):
                label = NODE_LABEL if target == Target.INTERPRETER else APP_LABEL
                return InstallResult.failed(
                    f"Another {label} operation is already in progress.",
                    "operation in progress",
                )
            try:
                return func(*args, **kwargs)
            finally:
                lock.release()
        return wrapper
    return decorator


def guarded(on_error: Callable[[Exception], T]) -> Callable[[Callable[..., T]], Callable[..., T]]:
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> T:
            try:
                return func(*args, **kwargs)
            except Exception as exc:
                log = kwargs.get("log") or next((a for a in args if callable(a)), _discard_log)
                log(f"[{func.__name__}] ERROR: {exc}")
                return on_error(exc)
        return wrapper
    return decorator


def _failed_result(exc: Exception) -> InstallResult:
    return InstallResult.failed("Operation failed", str(exc) or exc.__class__.__name__)


def _unknown_environment(_exc: Exception) -> EnvironmentStatus:
    return EnvironmentStatus(
        os=get_host_os(),
        interpreter_installed=False,
        interpreter_version=None,
        interpreter_version_ok=False,
        app_installed=False,
        app_version=None,
        config_dir_exists=False,
    )


def _failed_update_info(exc: Exception) -> UpdateInfo:
    return UpdateInfo(update_available=False, current_version=None, latest_version=None, error=str(exc))


def _failed_message(exc: Exception) -> str:
    return f"Operation failed: {exc}"


# Operations


@guarded(_unknown_environment)
def check_environment(log: Callable[[str], None] = _discard_log) -> EnvironmentStatus:
    host = get_host_os()
    log(f"[check] Operating system: {host.value}")

    node_version = get_node_version(log)
    node_ok = is_interpreter_version_ok(node_version)
    log(f"[check] {NODE_LABEL}: installed={node_version is not None}, version={node_version}, version_ok={node_ok}")

    app_version = get_app_version()
    log(f"[check] {APP_LABEL}: installed={app_version is not None}, version={app_version}")

    config_dir = get_config_dir()
    config_dir_exists = os.path.isdir(config_dir)
    log(f"[check] Config directory: {config_dir}, exists={config_dir_exists}")

    status = EnvironmentStatus(
        os=host,
        interpreter_installed=node_version is not None,
        interpreter_version=node_version,
        interpreter_version_ok=node_ok,
        app_installed=app_version is not None,
        app_version=app_version,
        config_dir_exists=config_dir_exists,
    )
    log(f"[check] Ready: {status.ready}")
    return status


def _interpreter_ready() -> bool:
    return is_interpreter_version_ok(get_node_version())


def _app_present() -> bool:
    return get_app_version() is not None


def run_post_install_script(log: Callable[[str], None]) -> None:
    tool_dir = get_tool_dir()
    script_path = os.path.join(tool_dir, POST_INSTALL_SCRIPT) if tool_dir else ""
    if not script_path or not os.path.isfile(script_path):
        log(f"[install-node] No bundled {POST_INSTALL_SCRIPT}; skipping post-install configuration.")
        return
    node_path = resolve_node_executable()
    if not node_path:
        log(f"[install-node] No usable node executable; skipping {POST_INSTALL_SCRIPT}.")
        return
    log(f"[install-node] Running {script_path}")
    output = run_command_output(node_path, [script_path], env=build_command_env(node_path_dirs(node_path)))
    log_command_output(output, log, "install-node")


@guarded(_failed_result)
@serialized(Target.INTERPRETER)
def install_interpreter(log: Callable[[str], None] = _discard_log) -> InstallResult:
    tag = "install-node"
    host = get_host_os()
    log(f"[{tag}] Installing {NODE_LABEL} on {host.value}...")
    if host not in NODE_STRATEGY_BUILDERS:
        log(f"[{tag}] Unsupported operating system: {host.value}")
        return InstallResult.failed("Unsupported operating system", f"No {NODE_LABEL} installer for {host.value}.")

    current = get_node_version(log)
    if is_interpreter_version_ok(current):
        return InstallResult.ok(f"{NODE_LABEL} {current} is already installed.")
    if current:
        log(f"[{tag}] {NODE_LABEL} {current} is older than v{MIN_NODE_MAJOR}; upgrading.")

    strategies = build_interpreter_strategies(host, log)
    winner, errors = run_strategy_chain(strategies, _interpreter_ready, log, tag)
    if winner is None:
        log(f"[{tag}] All installation strategies failed.")
        return InstallResult.failed(
            f"{NODE_LABEL} installation failed. Open the manual install terminal to finish the installation.",
            "; ".join(errors) or "No installation strategy was available.",
        )

    version = get_node_version()
    run_best_effort([("post-install script", lambda: run_post_install_script(log))], log, tag)
    log(f"[{tag}] {NODE_LABEL} {version} installed via {winner.label}.")
    return InstallResult.ok(f"{NODE_LABEL} {version} installed via {winner.label}.")


def install_skills(log: Callable[[str], None]) -> list[str]:
    tasks: list[tuple[str, Callable[[], object]]] = [
        (f"skill {skill}", functools.partial(run_app, ["skill", "install", skill])) for skill in DEFAULT_SKILLS
    ]
    log("[install-app] Installing default skills: " + ", ".join(DEFAULT_SKILLS))
    return run_best_effort(tasks, log, "install-app")


def _node_dirs_or_failure(tag: str, log: Callable[[str], None]) -> tuple[list[str], Optional[InstallResult]]:
    node_path = resolve_node_executable()
    if not node_path:
        log(f"[{tag}] {NODE_LABEL} was not found.")
        return ([], InstallResult.failed(f"Install {NODE_LABEL} first.", f"{NODE_LABEL} was not found."))
    return (node_path_dirs(node_path), None)


@guarded(_failed_result)
@serialized(Target.APPLICATION)
def install_application(log: Callable[[str], None] = _discard_log) -> InstallResult:
    tag = "install-app"
    log(f"[{tag}] Installing {APP_LABEL}...")
    node_dirs, failure = _node_dirs_or_failure(tag, log)
    if failure:
        return failure

    existing = get_app_version()
    if existing:
        return InstallResult.ok(f"{APP_LABEL} {existing} is already installed.")

    winner, errors = run_strategy_chain(registry_install_strategies(node_dirs), _app_present, log, tag)
    if winner is None:
        return InstallResult.failed(
            f"{APP_LABEL} installation failed. Open the manual install terminal to finish the installation.",
            "; ".join(errors),
        )

    install_skills(log)
    version = get_app_version()
    return InstallResult.ok(f"{APP_LABEL} {version} installed via {winner.label}.")


def stop_gateway(log: Callable[[str], None], tag: str) -> None:
    log(f"[{tag}] Stopping the {APP_LABEL} gateway...")
    run_best_effort([("gateway stop", lambda: run_app(["gateway", "stop"]))], log, tag)
    time.sleep(GATEWAY_STOP_SETTLE_SECONDS)


@guarded(_failed_result)
@serialized(Target.APPLICATION)
def uninstall_application(log: Callable[[str], None] = _discard_log) -> InstallResult:
    tag = "uninstall-app"
    log(f"[{tag}] Uninstalling {APP_LABEL}...")
    if get_app_version() is None:
        return InstallResult.ok(f"{APP_LABEL} is not installed.")
    stop_gateway(log, tag)

    node_dirs, failure = _node_dirs_or_failure(tag, log)
    if failure:
        return failure
    strategy = npm_strategy(StrategyKind.PACKAGE_MANAGER_PRIMARY, "npm uninstall", ["uninstall", "-g", APP_PACKAGE], node_dirs)
    try:
        output = execute_strategy(strategy)
    except CommandError as exc:
        log(f"[{tag}] npm uninstall failed: {exc}")
        return InstallResult.failed(f"{APP_LABEL} uninstall failed.", str(exc))
    log_command_output(output, log, tag)

    time.sleep(GATEWAY_STOP_SETTLE_SECONDS)
    if get_app_version() is None:
        return InstallResult.ok(f"{APP_LABEL} was uninstalled.")
    return InstallResult.failed(
        f"The uninstall command finished but {APP_LABEL} is still present. Remove it manually.",
        output.strip() or "openclaw is still on PATH",
    )


@guarded(_failed_result)
@serialized(Target.APPLICATION)
def update_application(log: Callable[[str], None] = _discard_log) -> InstallResult:
    tag = "update-app"
    log(f"[{tag}] Updating {APP_LABEL}...")
    node_dirs, failure = _node_dirs_or_failure(tag, log)
    if failure:
        return failure
    stop_gateway(log, tag)

    winner, errors = run_strategy_chain(
        registry_install_strategies(node_dirs), _app_present, log, tag, require_command_success=True
    )
    if winner is None:
        return InstallResult.failed(f"{APP_LABEL} update failed.", "; ".join(errors))
    version = get_app_version()
    return InstallResult.ok(f"{APP_LABEL} updated to {version}.")


@guarded(_failed_result)
@serialized(Target.APPLICATION)
def sync_application_from_source(log: Callable[[str], None] = _discard_log) -> InstallResult:
    tag = "sync-app"
    log(f"[{tag}] Installing {APP_LABEL} from {APP_REPO_URL}...")
    node_dirs, failure = _node_dirs_or_failure(tag, log)
    if failure:
        return failure
    stop_gateway(log, tag)

    winner, errors = run_strategy_chain(
        source_install_strategies(node_dirs), _app_present, log, tag, require_command_success=True
    )
    if winner is None:
        return InstallResult.failed("Sync from GitHub failed.", "; ".join(errors))
    version = get_app_version()
    return InstallResult.ok(f"{APP_LABEL} {version} synced from GitHub via {winner.label}.")


def get_latest_app_version(log: Callable[[str], None] = _discard_log) -> Optional[str]:
    node_path = resolve_node_executable()
    strategy = npm_strategy(
        StrategyKind.PACKAGE_MANAGER_PRIMARY,
        "npm view",
        ["view", APP_PACKAGE, "version"],
        node_path_dirs(node_path),
    )
    try:
        output = execute_strategy(strategy)
    except CommandError as exc:
        log(f"[update-check] Unable to query the latest version: {exc}")
        return None
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    return lines[-1] if lines else None


@guarded(_failed_update_info)
def check_application_update(log: Callable[[str], None] = _discard_log) -> UpdateInfo:
    current = get_app_version()
    log(f"[update-check] Current version: {current}")
    if not current:
        return UpdateInfo(False, None, None, f"{APP_LABEL} is not installed.")

    latest = get_latest_app_version(log)
    log(f"[update-check] Latest version: {latest}")
    if not latest:
        return UpdateInfo(False, current, None, "Unable to fetch the latest version from the npm registry.")

    available = compare_versions(current, latest)
    log(f"[update-check] Update available: {available}")
    return UpdateInfo(available, current, latest, None)


@guarded(_failed_result)
def init_application_config(log: Callable[[str], None] = _discard_log) -> InstallResult:
    tag = "init-config"
    root = get_config_dir()
    log(f"[{tag}] Config directory: {root}")
    for path in [root, *(os.path.join(root, *subdir.split("/")) for subdir in CONFIG_SUBDIRS)]:
        try:
            os.makedirs(path, exist_ok=True)
        except OSError as exc:
            log(f"[{tag}] Unable to create {path}: {exc}")
            return InstallResult.failed(f"Unable to create directory {path}", str(exc))

    if os.name == "posix":
        try:
            os.chmod(root, CONFIG_DIR_MODE)
            log(f"[{tag}] Restricted {root} to mode {CONFIG_DIR_MODE:o}.")
        except OSError as exc:
            log(f"[{tag}] Warning: unable to restrict permissions on {root}: {exc}")

    log(f"[{tag}] Setting gateway.mode to {GATEWAY_MODE}")
    try:
        output = run_app(["config", "set", "gateway.mode", GATEWAY_MODE])
    except CommandError as exc:
        log(f"[{tag}] Setting gateway.mode failed: {exc}")
        return InstallResult.failed("Configuration directories are ready, but setting gateway.mode failed.", str(exc))
    log_command_output(output, log, tag)
    return InstallResult.ok(f"{APP_LABEL} configuration initialized.")


# Manual installation terminal


def _unix_pause_lines() -> list[str]:
    return ["echo ''", "read -p 'Press Enter to close this window...' _"]


def build_manual_install_script(target: Target, host_os: HostOS) -> str:
    if host_os == HostOS.WINDOWS:
        if target == Target.INTERPRETER:
            body = [
                "if (Get-Command winget -ErrorAction SilentlyContinue) {",
                f"    Write-Host 'Installing {NODE_LABEL} with winget...' -ForegroundColor Yellow",
                f"    winget install --id {NODE_WINGET_ID} -e --accept-source-agreements --accept-package-agreements",
                "} else {",
                f"    Write-Host 'Download {NODE_LABEL} from {NODE_DOWNLOAD_URL}' -ForegroundColor Yellow",
                f"    Start-Process {powershell_single_quote(NODE_DOWNLOAD_URL)}",
                "}",
            ]
        else:
            body = [
                f"Write-Host 'Installing {APP_LABEL}...' -ForegroundColor Yellow",
                f"npm install -g {APP_PACKAGE}@latest",
                f"{APP_COMMAND} config set gateway.mode {GATEWAY_MODE}",
                f"{APP_COMMAND} --version",
            ]
        title = NODE_LABEL if target == Target.INTERPRETER else APP_LABEL
        lines = [
            f"Write-Host '==== {title} installation ====' -ForegroundColor Cyan",
            *body,
            "Write-Host ''",
            "Write-Host 'Restart OpenClaw Manager when the installation has finished.' -ForegroundColor Green",
            "Read-Host 'Press Enter to close this window'",
        ]
        return "\r\n".join(lines) + "\r\n"

    if target == Target.INTERPRETER:
        if host_os == HostOS.MACOS:
            body = [
                BREW_SHELLENV,
                "if ! command -v brew >/dev/null 2>&1; then",
                f'    /bin/bash -c "$(curl -fsSL {HOMEBREW_INSTALL_URL})"',
                f"    {BREW_SHELLENV}",
                "fi",
                f"brew install node@{MIN_NODE_MAJOR}",
                f"brew link --overwrite --force node@{MIN_NODE_MAJOR}",
            ]
        else:
            body = nvm_install_script().splitlines()
        body.append("node --version")
    else:
        root = get_config_dir()
        body = [
            f"npm install -g {APP_PACKAGE}@latest",
            f"{APP_COMMAND} config set gateway.mode {GATEWAY_MODE} 2>/dev/null || true",
            *(f"mkdir -p {shlex.quote(os.path.join(root, *subdir.split('/')))}" for subdir in CONFIG_SUBDIRS),
            f"chmod {CONFIG_DIR_MODE:o} {shlex.quote(root)}",
            f"{APP_COMMAND} --version",
        ]
    title = NODE_LABEL if target == Target.INTERPRETER else APP_LABEL
    lines = [
        "#!/bin/bash",
        "clear",
        f"echo '==== {title} installation ===='",
        "echo ''",
        *body,
        *_unix_pause_lines(),
    ]
    return "\n".join(lines) + "\n"


def manual_install_command(target: Target) -> str:
    if target == Target.INTERPRETER:
        return f"install {NODE_LABEL} {MIN_NODE_MAJOR}+ from {NODE_DOWNLOAD_URL}"
    return f"npm install -g {APP_PACKAGE}@latest"


def write_manual_install_script(target: Target, host_os: HostOS) -> str:
    extension = {HostOS.WINDOWS: ".ps1", HostOS.MACOS: ".command"}.get(host_os, ".sh")
    state_dir = get_manager_state_directory()
    os.makedirs(state_dir, exist_ok=True)
    path = os.path.join(state_dir, f"install_{target.value}{extension}")
    write_text_file(path, build_manual_install_script(target, host_os))
    if host_os != HostOS.WINDOWS:
        os.chmod(path, 0o755)
    return path


def launch_linux_terminal(script_path: str) -> Optional[str]:
    for terminal, flag in LINUX_TERMINALS:
        if not shutil.which(terminal):
            continue
        try:
            subprocess.Popen([terminal, flag, script_path], start_new_session=True)
            return terminal
        except OSError:
            continue
    return None


@guarded(_failed_message)
def open_manual_install_terminal(target: "Target | str", log: Callable[[str], None] = _discard_log) -> str:
    tag = "manual-install"
    try:
        target = Target(target)
    except ValueError:
        return f"Unknown installation target: {target}"
    host = get_host_os()
    if host == HostOS.OTHER:
        return f"Automatic terminal launch is not supported here. Please {manual_install_command(target)}."

    try:
        script_path = write_manual_install_script(target, host)
    except OSError as exc:
        return f"Unable to write the installation script: {exc}"
    log(f"[{tag}] Wrote installation script: {script_path}")

    if host == HostOS.WINDOWS:
        launcher = (
            "Start-Process powershell -ArgumentList "
            + "@('-NoExit', '-ExecutionPolicy', 'Bypass', '-File', "
            + powershell_single_quote(quote_windows_argument(script_path))
            + ")"
        )
        if target == Target.INTERPRETER:
            launcher += " -Verb RunAs"
        try:
            run_powershell_output(launcher)
        except CommandError as exc:
            log(f"[{tag}] Unable to open PowerShell: {exc}")
            return f"Unable to open an installation terminal. Please {manual_install_command(target)}."
        return "Opened the installation terminal."

    if host == HostOS.MACOS:
        try:
            subprocess.Popen(["open", script_path])
        except OSError as exc:
            log(f"[{tag}] Unable to open Terminal: {exc}")
            return f"Unable to open an installation terminal. Please {manual_install_command(target)}."
        return "Opened the installation terminal."

    terminal = launch_linux_terminal(script_path)
    if terminal:
        log(f"[{tag}] Launched {terminal}.")
        return "Opened the installation terminal."
    return f"Unable to launch a terminal. Run manually: bash {shlex.quote(script_path)}"
