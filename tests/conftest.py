import pytest

from fakes import TOOLS, FakeEngine, FakeKeyService, FakeRunner, pangeo_discovery, pangeo_routes, pangeo_views
from eksadopt.core.config import AdoptConfig
from eksadopt.vault.classifier import SensitivityPolicy
from eksadopt.vault.encryptors import EnvelopeEncryptor


@pytest.fixture
def workdir(tmp_path):
    path = tmp_path / "adopt"
    path.mkdir()
    return path


@pytest.fixture
def config(workdir):
    return AdoptConfig(workdir=workdir, encryption_backend="envelope")


@pytest.fixture
def runner(workdir):
    return FakeRunner(pangeo_routes(), binaries=TOOLS, cwd=str(workdir))


@pytest.fixture
def policy():
    return SensitivityPolicy.load()


@pytest.fixture
def key_service():
    return FakeKeyService()


@pytest.fixture
def envelope(key_service):
    return EnvelopeEncryptor(key_service)


@pytest.fixture
def discovery():
    return pangeo_discovery()


@pytest.fixture
def engine():
    return FakeEngine(pangeo_views())
