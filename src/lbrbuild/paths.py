"""Path helpers for locating lbr-build directories and files."""

from pathlib import Path

from platformdirs import user_config_dir

LBRBUILD_APP_NAME = "lbrbuild"
LBR_DIRNAME = ".lbr"
ETC_DIRNAME = "etc"
TMP_DIRNAME = "tmp"
LOG_DIRNAME = "log"
BUILD_HISTORY_DIRNAME = "build-history"
APP_CONFIG_FILENAME = "app-config.json"
USER_APP_CONFIG_FILENAME = ".user-app-config.json"
INSTALLED_CONFIG_FILENAME = "config.json"
HISTORY_PLAN_FILENAME = "compile-list.json"
REMOTE_PYTHON_PATH = "venv/bin/python"


def installed_config_path() -> Path:
    """Return the path to the installed defaults config file.

    Returns:
        Path inside the per-user configuration directory.

    Example:
        >>> installed_config_path().name == INSTALLED_CONFIG_FILENAME
        True
    """
    return Path(user_config_dir(LBRBUILD_APP_NAME)) / INSTALLED_CONFIG_FILENAME


def lbr_dir(workspace: Path) -> Path:
    """Return the ``.lbr`` state directory of a workspace.

    Example:
        >>> lbr_dir(Path("/tmp/project")).as_posix()
        '/tmp/project/.lbr'
    """
    return workspace / LBR_DIRNAME


def etc_dir(workspace: Path) -> Path:
    return lbr_dir(workspace) / ETC_DIRNAME


def tmp_dir(workspace: Path) -> Path:
    return lbr_dir(workspace) / TMP_DIRNAME


def history_root(workspace: Path) -> Path:
    """Return the root directory holding build history snapshots."""
    return lbr_dir(workspace) / BUILD_HISTORY_DIRNAME


def app_config_path(workspace: Path) -> Path:
    return etc_dir(workspace) / APP_CONFIG_FILENAME


def user_app_config_path(workspace: Path) -> Path:
    return etc_dir(workspace) / USER_APP_CONFIG_FILENAME


def remote_path(remote_base_dir: str, relative: str) -> str:
    """Join a workspace-relative path onto the remote base directory.

    Example:
        >>> remote_path("/home/build/app/", ".lbr/tmp")
        '/home/build/app/.lbr/tmp'
    """
    return f"{remote_base_dir.rstrip('/')}/{relative.lstrip('/')}"


def remote_python(remote_lbr_dir: str) -> str:
    """Return the interpreter path inside the remote LBR installation.

    Example:
        >>> remote_python("/opt/lbr")
        '/opt/lbr/venv/bin/python'
    """
    return remote_path(remote_lbr_dir, REMOTE_PYTHON_PATH)
