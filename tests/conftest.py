import sys
from pathlib import Path

import pytest

# Add project root to sys.path (tools/, services/, bridge/ are top-level dirs)
project_root = Path(__file__).resolve().parents[1]
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from services.artifact_pipeline import ArtifactPipeline
from services.config_manager import ServiceSettings
from services.file_writer import SafeFileWriter


@pytest.fixture()
def project_dir(tmp_path):
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture()
def writer(project_dir):
    w = SafeFileWriter()
    w.set_project_root(str(project_dir))
    return w


@pytest.fixture()
def settings():
    return ServiceSettings(backup_cleanup_interval_hours=0)


@pytest.fixture()
def pipeline(settings, project_dir):
    p = ArtifactPipeline(settings)
    p.set_project_root(str(project_dir))
    return p
