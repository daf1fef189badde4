"""
测试工具和fixtures
Test Utilities and Fixtures
"""

import re
import sys
import tempfile
from io import BytesIO
from pathlib import Path
from urllib.parse import parse_qs

import httpx
import pytest
from PIL import Image

sys.path.insert(0, str(Path(__file__).parent.parent))

from estatehub.app import build_app
from estatehub.core.config import Config
from estatehub.core.logger import Logger
from estatehub.modules.assets.models import UploadPayload


class FakeAssetServer:
    """
    Cloudinary 兼容接口的内存实现，配合 httpx.MockTransport 使用

    - rejected_files: 上传时返回 400 的文件名
    - unavailable_files: 上传时返回 503 的文件名
    - fail_deletes: 删除请求一律返回 503
    """

    def __init__(self):
        self.assets: dict[str, str] = {}
        self.deleted: list[str] = []
        self.upload_forms: list[bytes] = []
        self.delete_forms: list[dict[str, str]] = []
        self.rejected_files: set[str] = set()
        self.unavailable_files: set[str] = set()
        self.fail_deletes = False
        self._counter = 0

    @property
    def upload_requests(self) -> int:
        return len(self.upload_forms)

    @property
    def delete_requests(self) -> int:
        return len(self.delete_forms)

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith("/image/upload"):
            return self._upload(request)
        if path.endswith("/image/destroy"):
            return self._destroy(request)
        return httpx.Response(404, json={"error": {"message": "unknown endpoint"}})

    def _upload(self, request: httpx.Request) -> httpx.Response:
        self.upload_forms.append(request.content)
        match = re.search(rb'filename="([^"]+)"', request.content)
        filename = match.group(1).decode() if match else ""

        if filename in self.unavailable_files:
            return httpx.Response(503, json={"error": {"message": "service unavailable"}})
        if filename in self.rejected_files:
            return httpx.Response(400, json={"error": {"message": f"Invalid image file {filename}"}})

        self._counter += 1
        public_id = f"estatehub_asset_{self._counter}"
        url = f"https://res.assets.test/demo/image/upload/v1/{public_id}.png"
        self.assets[public_id] = url
        return httpx.Response(200, json={"public_id": public_id, "secure_url": url, "url": url.replace("https", "http")})

    def _destroy(self, request: httpx.Request) -> httpx.Response:
        form = {key: values[0] for key, values in parse_qs(request.content.decode()).items()}
        self.delete_forms.append(form)

        if self.fail_deletes:
            return httpx.Response(503, json={"error": {"message": "service unavailable"}})

        public_id = form.get("public_id", "")
        if public_id not in self.assets:
            return httpx.Response(200, json={"result": "not found"})
        del self.assets[public_id]
        self.deleted.append(public_id)
        return httpx.Response(200, json={"result": "ok"})


def make_image_bytes(fmt: str = "PNG", size: tuple[int, int] = (8, 8)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, (200, 120, 40)).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def temp_dir():
    """创建临时目录"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_config_file(temp_dir):
    """创建临时配置文件"""
    config_file = temp_dir / "config.yaml"
    config_content = f"""
app:
  name: "estatehub-test"
  version: "1.0.0"
  debug: true
  log_level: "DEBUG"

database:
  path: "{(temp_dir / 'estatehub.db').as_posix()}"
  timeout: 30

asset_store:
  base_url: "https://api.assets.test/v1_1"
  cloud_name: "demo"
  upload_preset: "estatehub_unsigned"
  api_key: "test_api_key"
  api_secret: "test_api_secret"
  timeout: 5
  retry_times: 2
  retry_delay: 0

media:
  max_gallery_size: 7
  min_gallery_size: 1
  max_image_size: 1048576
  supported_formats: ["jpg", "jpeg", "png", "webp"]
  upload_concurrency: 4

security:
  bcrypt_rounds: 4
"""
    config_file.write_text(config_content)
    return config_file


@pytest.fixture
def config(temp_config_file):
    """测试配置实例"""
    monkeypatch = pytest.MonkeyPatch()
    monkeypatch.setenv("CLOUDINARY_API_SECRET", "env_secret")

    config = Config(str(temp_config_file))
    yield config

    monkeypatch.undo()


@pytest.fixture
def logger(temp_dir, config):
    """测试日志实例"""
    logger = Logger()
    yield logger


@pytest.fixture
def fake_asset_server():
    return FakeAssetServer()


@pytest.fixture
def asset_transport(fake_asset_server):
    return httpx.MockTransport(fake_asset_server.handler)


@pytest.fixture
def hub(config, asset_transport):
    """按测试配置装配的完整应用"""
    return build_app(config, transport=asset_transport)


@pytest.fixture
def make_payloads():
    """生成 n 个可解码的 PNG 上传文件"""

    def _make(count: int = 1, prefix: str = "photo") -> list[UploadPayload]:
        content = make_image_bytes()
        return [UploadPayload(f"{prefix}_{i}.png", content, "image/png") for i in range(count)]

    return _make


@pytest.fixture
def listing_fields():
    """示例房源字段（不含图片）"""
    return {
        "title": "Sunny two-bedroom apartment",
        "description": "Quiet street, close to the park and the metro",
        "address": "12 Harbour Road",
        "transaction_type": "rent",
        "bedrooms": 2,
        "bathrooms": 1,
        "regular_price": 1800,
        "discount_price": None,
        "has_offer": False,
        "has_parking": True,
        "is_furnished": False,
    }


@pytest.fixture
def make_listing(hub, make_payloads, listing_fields):
    """上传图片并创建房源"""

    async def _make(caller_id: str = "owner-1", images: int = 2, **overrides):
        handles = await hub.listings.upload_images(caller_id, make_payloads(images))
        fields = {**listing_fields, **overrides, "images": [h.url for h in handles]}
        return await hub.listings.create_listing(caller_id, fields)

    return _make


@pytest.fixture
def make_user(hub):
    """创建用户"""

    async def _make(username: str = "alice", email: str = "alice@example.com", password: str = "s3cret-pass"):
        return await hub.user_repository.create(username, email, password)

    return _make
