"""Tests for the InsightFace engine that do not need downloaded model files."""
import io
import zipfile
from pathlib import Path

import aiohttp
import numpy as np
import pytest

from faceguard.core.exceptions import OptionalFeatureUnavailable
from faceguard.services.classifier import Classifier
from faceguard.services.descriptor_store import DescriptorStore
from faceguard.services.matcher_cache import MatcherCache
from faceguard.services.model_loader import ModelLoader
from faceguard.services.recognition import insight_face
from faceguard.services.recognition.insight_face import InsightFaceEngine, l2_normalize


class FakeDetector:
    """Mimics the SCRFD ``detect`` output: (N, 5) boxes with scores and (N, 5, 2) keypoints."""

    def __init__(self, boxes):
        self.boxes = np.asarray(boxes, dtype=np.float32)

    def detect(self, img, max_num=0, metric="default"):
        return self.boxes, np.zeros((self.boxes.shape[0], 5, 2), dtype=np.float32)


class FakeRecognizer:
    output_shape = [1, 8]

    def get(self, img, face):
        face.embedding = np.full(8, face.det_score, dtype=np.float32)
        return face.embedding


class FakeAttributes:
    def get(self, img, face):
        face.gender = 1
        face.age = 34
        return face.gender, face.age


@pytest.fixture
def face_engine(tmp_path: Path) -> InsightFaceEngine:
    return InsightFaceEngine(model_name="buffalo_l", cache_dir=str(tmp_path), det_size=320)


class TestInsightFaceEngine:
    async def test_detect_before_load_fails(self, face_engine, frame):
        with pytest.raises(RuntimeError):
            await face_engine.detect_all(frame)

    async def test_missing_local_source_fails(self, face_engine, tmp_path):
        with pytest.raises(FileNotFoundError):
            await face_engine.load_critical(str(tmp_path / "nowhere"))

    async def test_optional_requires_critical_source(self, face_engine):
        with pytest.raises(OptionalFeatureUnavailable):
            await face_engine.load_optional("https://unused/models")

    def test_resolve_pack_dir(self, face_engine, tmp_path):
        pack = tmp_path / "models" / "buffalo_l"
        pack.mkdir(parents=True)
        (pack / "det_10g.onnx").write_bytes(b"")

        assert face_engine._resolve_pack_dir(str(tmp_path / "models")) == pack
        assert face_engine._resolve_pack_dir(str(pack)) == pack
        assert face_engine._resolve_pack_dir(str(tmp_path / "empty")) is None

    async def test_detect_all_normalizes_boxes(self, face_engine, frame):
        face_engine.detector_model = FakeDetector([[64, 48, 320, 240, 0.9], [0, 0, 640, 480, 0.5]])
        face_engine.recognition_model = FakeRecognizer()

        faces = await face_engine.detect_all(frame)

        assert len(faces) == 2
        assert faces[0].bounding_box.as_list() == pytest.approx([100.0, 100.0, 500.0, 500.0])
        assert faces[1].bounding_box.as_list() == pytest.approx([0.0, 0.0, 1000.0, 1000.0])
        assert faces[0].embedding.shape == (8,)
        assert faces[0].confidence == pytest.approx(0.9)
        assert faces[0].age is None
        assert face_engine.descriptor_dim == 8

    async def test_detect_all_with_attributes(self, face_engine, frame):
        face_engine.detector_model = FakeDetector([[64, 48, 320, 240, 0.9]])
        face_engine.recognition_model = FakeRecognizer()
        face_engine.attribute_model = FakeAttributes()

        faces = await face_engine.detect_all(frame)

        assert faces[0].age == 34
        assert faces[0].gender == "male"

    async def test_no_faces(self, face_engine, frame):
        face_engine.detector_model = FakeDetector(np.zeros((0, 5)))
        face_engine.recognition_model = FakeRecognizer()

        assert await face_engine.detect_all(frame) == []

    async def test_context_exit_releases_models(self, face_engine):
        face_engine.detector_model = FakeDetector([[0, 0, 1, 1, 0.9]])
        async with face_engine:
            pass
        assert face_engine.detector_model is None


class RawArcFaceRecognizer:
    """Emits embeddings at ArcFace's raw scale (norm ~22), one per call."""
    output_shape = [1, 8]

    def __init__(self, directions):
        self.embeddings = [22.0 * l2_normalize(d) for d in directions]

    def get(self, img, face):
        face.embedding = self.embeddings.pop(0)
        return face.embedding


class TestDescriptorScale:
    async def test_descriptors_are_unit_length(self, face_engine, frame):
        face_engine.detector_model = FakeDetector([[64, 48, 320, 240, 0.9]])
        face_engine.recognition_model = RawArcFaceRecognizer([np.arange(1, 9, dtype=np.float32)])

        faces = await face_engine.detect_all(frame)

        assert np.linalg.norm(faces[0].embedding) == pytest.approx(1.0, abs=1e-5)

    async def test_same_person_is_identified_end_to_end(self, face_engine, frame):
        enrolled = np.zeros(8, dtype=np.float32)
        enrolled[0] = 1.0
        # Cosine similarity 0.95 with the enrolled shot
        second_shot = np.zeros(8, dtype=np.float32)
        second_shot[0] = 0.95
        second_shot[1] = np.sqrt(1.0 - 0.95 ** 2)

        face_engine.detector_model = FakeDetector([[64, 48, 320, 240, 0.9]])
        face_engine.recognition_model = RawArcFaceRecognizer([enrolled, second_shot])

        store = DescriptorStore(dimension=8)
        store.create_identity("Alice", initial_vector=(await face_engine.detect_all(frame))[0].embedding)
        live = (await face_engine.detect_all(frame))[0].embedding

        handle = MatcherCache().get_or_build(store.profiles, 0.55)
        result = Classifier().classify(live, handle, 0.55)

        assert result.identified
        assert result.name == "Alice"
        assert result.confidence == 42


class FakeOnnxModel:
    def __init__(self, taskname):
        self.taskname = taskname
        self.output_shape = [1, 8]

    def prepare(self, ctx_id=0, input_size=None):
        pass


def fake_get_model(path, providers=None):
    """Model factory keyed on file contents; ``truncated`` files fail like a corrupt protobuf."""
    content = Path(path).read_bytes()
    if content == b"truncated":
        raise RuntimeError(f"INVALID_PROTOBUF: {path}")
    return FakeOnnxModel(content.decode())


def pack_archive() -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        zf.writestr("det_10g.onnx", b"detection")
        zf.writestr("w600k_r50.onnx", b"recognition")
    return buffer.getvalue()


@pytest.fixture
def downloads(face_engine, monkeypatch):
    """Serve model packs without network; URLs listed in ``offline`` fail."""
    calls = []
    offline = set()
    served = {"payload": pack_archive()}

    async def download(url, archive):
        calls.append(url)
        if any(url.startswith(host) for host in offline):
            raise aiohttp.ClientConnectionError(f"cannot reach {url}")
        archive.write_bytes(served["payload"])

    monkeypatch.setattr(insight_face, "get_model", fake_get_model)
    monkeypatch.setattr(face_engine, "_download", download)
    return calls, offline, served


def seed_corrupt_cache(face_engine) -> Path:
    target = face_engine.cache_dir / "models" / "buffalo_l"
    target.mkdir(parents=True)
    (target / "det_10g.onnx").write_bytes(b"truncated")
    return target


class TestModelPackCache:
    async def test_download_installs_pack(self, face_engine, downloads):
        calls, _, _ = downloads

        await face_engine.load_critical("https://a/models")

        assert calls == ["https://a/models/buffalo_l.zip"]
        assert face_engine.detector_model.taskname == "detection"
        assert sorted(p.name for p in (face_engine.cache_dir / "models").iterdir()) == ["buffalo_l"]

    async def test_cached_pack_is_reused(self, face_engine, downloads):
        calls, _, _ = downloads

        await face_engine.load_critical("https://a/models")
        await face_engine.load_critical("https://b/models")

        assert calls == ["https://a/models/buffalo_l.zip"]

    async def test_corrupt_cache_is_replaced_by_fresh_download(self, face_engine, downloads):
        calls, _, _ = downloads
        target = seed_corrupt_cache(face_engine)

        await face_engine.load_critical("https://a/models")

        assert calls == ["https://a/models/buffalo_l.zip"]
        assert (target / "det_10g.onnx").read_bytes() == b"detection"

    async def test_corrupt_cache_does_not_block_next_source(self, face_engine, downloads):
        calls, offline, _ = downloads
        offline.add("https://a")
        seed_corrupt_cache(face_engine)
        loader = ModelLoader(face_engine, urls=["https://a/models", "https://b/models"], timeout_ms=5000)

        assert await loader.ensure_loaded() is True
        assert loader.active_source == "https://b/models"
        assert calls == ["https://a/models/buffalo_l.zip", "https://b/models/buffalo_l.zip"]

    async def test_failed_unpack_leaves_no_partial_pack(self, face_engine, downloads):
        _, _, served = downloads
        served["payload"] = b"not a zip archive"

        with pytest.raises(zipfile.BadZipFile):
            await face_engine.load_critical("https://a/models")

        models_dir = face_engine.cache_dir / "models"
        assert list(models_dir.iterdir()) == []
