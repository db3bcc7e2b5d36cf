# qlean/utils.py
import os
import sys
import json
import tempfile

IS_FROZEN = getattr(sys, 'frozen', False) and hasattr(sys, '_MEIPASS')


def get_app_path(resource_path: str = '', writable: bool = False) -> str:
    """Absolute path under the package (or the frozen bundle).

    Read-only paths resolve inside the package, or ``sys._MEIPASS`` when
    frozen. Writable paths name a directory, resolve next to the frozen
    executable and are created.
    """
    if IS_FROZEN:
        base_path = os.path.dirname(sys.executable) if writable else sys._MEIPASS
    else:
        base_path = os.path.dirname(os.path.abspath(__file__))

    full_path = os.path.join(base_path, resource_path) if resource_path else base_path
    if writable:
        os.makedirs(full_path, exist_ok=True)
    return full_path


def load_json(path: str):
    """Read and parse a UTF-8 JSON file. Errors propagate to the caller."""
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def write_json_atomic(path: str, data) -> None:
    """Write JSON next to ``path`` and move it into place in one step."""
    directory = os.path.dirname(path) or '.'
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix='.tmp-', suffix='.json', dir=directory)
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise
