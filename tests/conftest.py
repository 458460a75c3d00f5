# Imagesmith test fixtures
import sys
from pathlib import Path
from typing import Dict, List, Optional

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC = REPO_ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from imagesmith.errors import ExecutionError  # noqa: E402
from imagesmith.settings import InstallerSettings  # noqa: E402
from imagesmith.workspace import Workspace  # noqa: E402


class FakeCompleted:
    def __init__(self, returncode=0, stdout="", stderr=""):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class FakeRunner:
    """Records commands instead of starting processes."""

    def __init__(self, exit_codes: Optional[List[int]] = None):
        self.exit_codes = list(exit_codes or [])
        self.commands: List = []
        self.scripts: List[str] = []
        self.fail_scripts_containing: List[str] = []
        self.powershell_stdout = ""

    def run(self, command) -> int:
        self.commands.append(command)
        if self.exit_codes:
            return self.exit_codes.pop(0)
        return 0

    def powershell(self, script, capture_output=False, check=True):
        self.scripts.append(script)
        for marker in self.fail_scripts_containing:
            if marker in script:
                raise ExecutionError(f"script failed: {marker}", returncode=1)
        return FakeCompleted(0, self.powershell_stdout)


class FakeDownloader:
    """Writes canned payloads instead of downloading."""

    def __init__(self, payloads: Optional[Dict[str, bytes]] = None, fail: bool = False):
        self.payloads = dict(payloads or {})
        self.fail = fail
        self.failing_urls: List[str] = []
        self.calls: List = []

    def fetch(self, url, destination) -> bool:
        self.calls.append((url, Path(destination)))
        if self.fail or url in self.failing_urls:
            return False
        dest = Path(destination)
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(self.payloads.get(url, b"payload"))
        return True


@pytest.fixture()
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture()
def downloader() -> FakeDownloader:
    return FakeDownloader()


@pytest.fixture()
def workspace(tmp_path: Path) -> Workspace:
    ws = Workspace(tmp_path / "work")
    ws.prepare()
    return ws


@pytest.fixture()
def settings(tmp_path: Path) -> InstallerSettings:
    return InstallerSettings(
        work_dir=str(tmp_path / "work"),
        winget_settle_seconds=0,
        use_bits=False,
    )
