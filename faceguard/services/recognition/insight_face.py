"""
InsightFace-based vision engine.

This module provides the concrete implementation of both vision capabilities
used by the service: acquiring the model pack from a source address
(``ModelSource``) and turning frames into descriptor-bearing faces
(``FaceDetector``).

Key Features:
    - Remote model packs downloaded with aiohttp and unpacked into a local cache
    - Local model directories used in place
    - Critical tier: detection + recognition models
    - Optional tier: gender/age attribute model from the same pack
    - Boxes normalized to the 0-1000 ``[ymin, xmin, ymax, xmax]`` scale
    - Descriptors scaled to unit length before they leave the engine
    - Model packs installed into the cache atomically; unusable packs discarded

Example:
    ```python
    engine = InsightFaceEngine()
    await engine.load_critical("https://github.com/deepinsight/insightface/releases/download/v0.7")
    faces = await engine.detect_all(frame)
    ```

Note:
    This implementation uses CPU inference by default. For GPU support,
    pass ``providers=["CUDAExecutionProvider"]``.
"""
import asyncio
import shutil
import uuid
import zipfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, TypeVar

import aiohttp
import numpy as np
from insightface.app.common import Face as InsightFace
from insightface.model_zoo import get_model

from faceguard.core.config import settings
from faceguard.core.exceptions import OptionalFeatureUnavailable
from faceguard.core.logging import get_logger
from faceguard.domain.entities.face import BoundingBox, Face
from faceguard.domain.interfaces.models.model_source import ModelSource
from faceguard.domain.interfaces.recognition.face_recognition import FaceDetector

logger = get_logger(__name__)

# Type variable for context manager
T = TypeVar('T', bound='InsightFaceEngine')

DOWNLOAD_CHUNK_BYTES = 1 << 20


def l2_normalize(vector: np.ndarray) -> np.ndarray:
    """Scale an ArcFace embedding to unit length.

    Raw ArcFace output has a norm around 20; matching distances are only
    meaningful between unit vectors.
    """
    vec = np.asarray(vector, dtype=np.float32).reshape(-1)
    norm = float(np.linalg.norm(vec))
    if norm == 0.0:
        return vec
    return vec / norm


class InsightFaceEngine(FaceDetector, ModelSource):
    """
    InsightFace implementation of the detector and model source capabilities.

    Attributes:
        detector_model: SCRFD detection model (critical tier)
        recognition_model: ArcFace recognition model (critical tier)
        attribute_model: Gender/age model (optional tier)
    """

    def __init__(
        self,
        model_name: Optional[str] = None,
        cache_dir: Optional[str] = None,
        det_size: Optional[int] = None,
        providers: Optional[Sequence[str]] = None,
    ) -> None:
        self.model_name = model_name or settings.MODEL_NAME
        self.cache_dir = Path(cache_dir or settings.MODEL_CACHE_DIR).expanduser()
        size = int(det_size or settings.DETECTION_SIZE)
        self.det_size = (size, size)
        self.providers = list(providers or ["CPUExecutionProvider"])

        self.detector_model: Any = None
        self.recognition_model: Any = None
        self.attribute_model: Any = None
        self._pack_dirs: Dict[str, Path] = {}

    async def __aenter__(self: T) -> T:
        """Enter async context.

        Returns:
            Self instance
        """
        logger.debug("Entering InsightFace engine context")
        return self

    async def __aexit__(self, exc_type: Optional[type], exc_val: Optional[Exception],
                        exc_tb: Optional[Any]) -> None:
        """Exit async context, releasing the loaded models."""
        logger.debug("Releasing InsightFace engine models")
        if exc_type:
            logger.error(
                "Error occurred during context exit",
                error=str(exc_val),
                exc_info=True
            )
        self.detector_model = None
        self.recognition_model = None
        self.attribute_model = None

    @property
    def descriptor_dim(self) -> Optional[int]:
        """Length of the descriptors produced by the recognition model."""
        if self.recognition_model is None:
            return None
        shape = getattr(self.recognition_model, "output_shape", None)
        return int(shape[1]) if shape else None

    def _cache_target(self) -> Path:
        return self.cache_dir / "models" / self.model_name

    async def _download(self, url: str, archive: Path) -> None:
        """Stream ``url`` into ``archive``."""
        async with aiohttp.ClientSession() as session:
            async with session.get(url) as response:
                response.raise_for_status()
                with open(archive, "wb") as fh:
                    async for chunk in response.content.iter_chunked(DOWNLOAD_CHUNK_BYTES):
                        fh.write(chunk)

    async def _fetch_pack(self, base_url: str) -> Path:
        """Download ``<base_url>/<model_name>.zip`` into the cache, once."""
        target = self._cache_target()
        if self._has_cached_pack():
            logger.debug("Using cached model pack", path=str(target))
            return target

        url = f"{base_url.rstrip('/')}/{self.model_name}.zip"
        target.parent.mkdir(parents=True, exist_ok=True)
        archive = target.parent / f".{self.model_name}-{uuid.uuid4().hex}.zip.part"
        try:
            await self._download(url, archive)
        except BaseException:
            archive.unlink(missing_ok=True)
            raise
        await asyncio.to_thread(self._install_pack, archive, target)
        logger.info("Downloaded model pack", url=url, path=str(target))
        return target

    @staticmethod
    def _install_pack(archive: Path, target: Path) -> None:
        """Unpack into a private staging directory and move it into place.

        The cache directory only ever appears fully extracted. Runs in a
        worker thread and cleans up after itself even when the awaiting
        coroutine was cancelled.
        """
        staging = target.parent / f".{target.name}-{uuid.uuid4().hex}.staging"
        try:
            with zipfile.ZipFile(archive) as zf:
                zf.extractall(staging)
            if target.exists():
                shutil.rmtree(target)
            staging.rename(target)
        finally:
            archive.unlink(missing_ok=True)
            shutil.rmtree(staging, ignore_errors=True)

    def _discard_cached_pack(self, pack_dir: Path) -> None:
        shutil.rmtree(pack_dir, ignore_errors=True)
        logger.warning("Discarded unusable cached model pack", path=str(pack_dir))

    def _resolve_pack_dir(self, address: str) -> Optional[Path]:
        """Return the local model directory for a local address, if it exists."""
        path = Path(address).expanduser()
        for candidate in (path / self.model_name, path):
            if candidate.is_dir() and any(candidate.glob("*.onnx")):
                return candidate
        return None

    def _load_models(self, pack_dir: Path, tasknames: Sequence[str]) -> Dict[str, Any]:
        models: Dict[str, Any] = {}
        for onnx_file in sorted(pack_dir.glob("**/*.onnx")):
            model = get_model(str(onnx_file), providers=self.providers)
            if model is None or model.taskname not in tasknames:
                continue
            models.setdefault(model.taskname, model)
        return models

    def _prepare_critical(self, pack_dir: Path) -> None:
        models = self._load_models(pack_dir, ("detection", "recognition"))
        missing = {"detection", "recognition"} - set(models)
        if missing:
            raise FileNotFoundError(f"Model pack {pack_dir} lacks {sorted(missing)} models")
        models["detection"].prepare(ctx_id=0, input_size=self.det_size)
        models["recognition"].prepare(ctx_id=0)
        self.detector_model = models["detection"]
        self.recognition_model = models["recognition"]

    def _has_cached_pack(self) -> bool:
        target = self._cache_target()
        return target.is_dir() and any(target.glob("**/*.onnx"))

    async def _load_remote(self, address: str) -> Path:
        """Prepare the critical models from a downloaded (or cached) pack.

        A pack that fails to load is removed from the cache, so it cannot
        shadow the download of any later source. A cached pack gets one fresh
        download from the same source before the attempt fails.
        """
        for attempt in range(2):
            from_cache = self._has_cached_pack()
            pack_dir = await self._fetch_pack(address)
            try:
                await asyncio.to_thread(self._prepare_critical, pack_dir)
                return pack_dir
            except Exception as e:
                self._discard_cached_pack(pack_dir)
                if not from_cache or attempt:
                    raise
                logger.info("Re-downloading model pack", source=address, error=str(e))

    async def load_critical(self, address: str) -> None:
        """Load detection and recognition models from a source address."""
        pack_dir = self._resolve_pack_dir(address)
        if pack_dir is not None:
            await asyncio.to_thread(self._prepare_critical, pack_dir)
        elif address.startswith(("http://", "https://")):
            pack_dir = await self._load_remote(address)
        else:
            raise FileNotFoundError(f"No model pack found under {address}")

        self._pack_dirs[address] = pack_dir
        logger.info(
            "Loaded InsightFace models",
            model=self.model_name,
            path=str(pack_dir),
            descriptor_dim=self.descriptor_dim,
        )

    async def load_optional(self, address: str) -> None:
        """Load the gender/age attribute model from the pack served by ``address``."""
        pack_dir = self._pack_dirs.get(address)
        if pack_dir is None:
            raise OptionalFeatureUnavailable(
                "Critical models were not loaded from this source",
                details={"source": address},
            )
        try:
            models = await asyncio.to_thread(self._load_models, pack_dir, ("genderage",))
        except Exception as e:
            raise OptionalFeatureUnavailable(
                f"Failed to load attribute model: {e}", details={"source": address}
            ) from e
        model = models.get("genderage")
        if model is None:
            raise OptionalFeatureUnavailable(
                "Model pack has no gender/age model", details={"path": str(pack_dir)}
            )
        model.prepare(ctx_id=0)
        self.attribute_model = model

    def _convert_to_face(self, face_data: InsightFace, height: int, width: int) -> Face:
        """
        Convert an InsightFace result to our Face domain model.

        Args:
            face_data: Face with bbox, det_score and embedding set
            height: Frame height in pixels
            width: Frame width in pixels

        Returns:
            Face: Domain model with a 0-1000 box and the descriptor
        """
        x1, y1, x2, y2 = [float(v) for v in face_data.bbox]
        age = getattr(face_data, "age", None)
        gender = getattr(face_data, "gender", None)
        return Face(
            bounding_box=BoundingBox.from_pixels(x1, y1, x2, y2, width, height),
            confidence=float(face_data.det_score),
            embedding=l2_normalize(face_data.embedding),
            age=int(age) if age is not None else None,
            gender=("male" if int(gender) == 1 else "female") if gender is not None else None,
        )

    def _detect_sync(self, frame: np.ndarray) -> List[Face]:
        bboxes, kpss = self.detector_model.detect(frame, max_num=0, metric="default")
        if bboxes is None or bboxes.shape[0] == 0:
            return []

        height, width = frame.shape[:2]
        faces: List[Face] = []
        for i in range(bboxes.shape[0]):
            face_data = InsightFace(
                bbox=bboxes[i, 0:4],
                kps=kpss[i] if kpss is not None else None,
                det_score=bboxes[i, 4],
            )
            self.recognition_model.get(frame, face_data)
            if self.attribute_model is not None:
                self.attribute_model.get(frame, face_data)
            faces.append(self._convert_to_face(face_data, height, width))
        return faces

    async def detect_all(self, frame: np.ndarray) -> List[Face]:
        """Detect every face in the frame with its descriptor."""
        if self.detector_model is None or self.recognition_model is None:
            raise RuntimeError("InsightFace models are not loaded")
        faces = await asyncio.to_thread(self._detect_sync, frame)
        logger.debug("Face detection results", faces_found=len(faces))
        return faces
