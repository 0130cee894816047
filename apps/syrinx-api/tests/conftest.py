import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from fakes import FakeEngine, recording_transcoder
from syrinx_api.main import create_app
from syrinx_api.registry import ModelRegistry
from syrinx_api.routes import limiter


@pytest.fixture(autouse=True)
def reset_rate_limits():
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture()
def models_dir(tmp_path):
    root = tmp_path / "models"
    root.mkdir()
    for name in ("tohoku", "mei", "takumi"):
        (root / f"{name}.htsvoice").write_bytes(b"HTS")
    return root


@pytest.fixture()
def registry(models_dir):
    return ModelRegistry.initialize(models_dir, engine_factory=lambda path: FakeEngine())


@pytest.fixture()
def transcoder():
    return recording_transcoder()


@pytest.fixture()
def app(registry, transcoder):
    return create_app(registry=registry, transcoder=transcoder)


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
