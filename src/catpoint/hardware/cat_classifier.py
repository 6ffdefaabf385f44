"""
Cat Classifier - 摄像头图像猫检测

- CatClassifier: contract consumed by SecurityService
- FakeCatClassifier: random verdicts for demos without a model
- YoloCatClassifier: pretrained COCO YOLO model, "cat" class only

Thresholds are percentages (0, 100], as SecurityService passes them.
"""

import random
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import cv2
import numpy as np
import structlog

from ..domain.errors import ClassifierError, InvalidArgumentError

# Ultralytics YOLO (optional extra: pip install catpoint-edge[yolo])
try:
    from ultralytics import YOLO
    HAS_YOLO = True
except ImportError:
    YOLO = None
    HAS_YOLO = False

logger = structlog.get_logger()

CAT_CLASS_NAME = "cat"


class CatClassifier(ABC):
    """Answers one question about an image: is there a cat in it?"""

    @abstractmethod
    def contains_cat(self, image: Any, confidence_threshold: float) -> bool:
        """
        Args:
            image: Decoded image (BGR ndarray) or anything the backend accepts
            confidence_threshold: Minimum confidence in percent

        Returns:
            True if a cat was found at or above the threshold
        """
        pass


# =============================================================================
# Fake Classifier
# =============================================================================

class FakeCatClassifier(CatClassifier):
    """Coin-flip classifier. Ignores both image and threshold."""

    def __init__(self, seed: Optional[int] = None):
        self._random = random.Random(seed)

    def contains_cat(self, image: Any, confidence_threshold: float) -> bool:
        return self._random.random() < 0.5


# =============================================================================
# YOLO Classifier
# =============================================================================

class YoloCatClassifier(CatClassifier):
    """
    YOLO 猫检测器

    - 使用预训练 COCO 模型 (默认 YOLOv11n, CPU 友好)
    - 只推理 cat 类别
    - 置信度阈值由调用方按百分比给出
    """

    def __init__(
        self,
        model_name: str = "yolo11n.pt",
        device: str = "cpu",
    ):
        """
        Args:
            model_name: YOLO 模型名称或权重路径
            device: 'cpu' 或 'cuda'
        """
        if not HAS_YOLO:
            raise ClassifierError("ultralytics not installed. Install: pip install catpoint-edge[yolo]")

        self.model_name = model_name
        self.device = device

        logger.info("Loading YOLO model", model=model_name, device=device)
        try:
            self.model = YOLO(model_name)
            if device == "cuda":
                self.model.to("cuda")
        except Exception as e:
            raise ClassifierError(f"Cannot load YOLO model {model_name}: {e}") from e

        # {0: 'person', 15: 'cat', ...}
        self.class_names: Dict[int, str] = self.model.names
        self.cat_class_ids: List[int] = [
            class_id for class_id, name in self.class_names.items() if name == CAT_CLASS_NAME
        ]
        if not self.cat_class_ids:
            raise ClassifierError(f"Model {model_name} has no '{CAT_CLASS_NAME}' class")

        # 统计
        self.frame_count = 0
        self.cat_count = 0
        self.total_inference_time = 0.0

    def contains_cat(self, image: Any, confidence_threshold: float) -> bool:
        if not 0.0 < confidence_threshold <= 100.0:
            raise InvalidArgumentError(
                f"confidence_threshold must be in (0, 100], got {confidence_threshold}"
            )
        conf = confidence_threshold / 100.0

        start_time = time.time()
        try:
            results = self.model(
                image,
                conf=conf,
                classes=self.cat_class_ids,
                verbose=False,
            )
        except Exception as e:
            raise ClassifierError(f"YOLO inference failed: {e}") from e

        self.total_inference_time += time.time() - start_time
        self.frame_count += 1

        for result in results:
            boxes = result.boxes
            for i in range(len(boxes)):
                if int(boxes.cls[i]) in self.cat_class_ids and float(boxes.conf[i]) >= conf:
                    self.cat_count += 1
                    logger.debug("Cat detected", confidence=float(boxes.conf[i]))
                    return True

        return False

    def get_stats(self) -> Dict[str, float]:
        """获取统计信息"""
        return {
            "frame_count": self.frame_count,
            "cat_count": self.cat_count,
            "total_inference_time": self.total_inference_time,
            "avg_inference_time": self.total_inference_time / self.frame_count if self.frame_count > 0 else 0,
        }


# =============================================================================
# Image decoding
# =============================================================================

def decode_image(data: bytes) -> np.ndarray:
    """Decode JPEG/PNG bytes into a BGR frame."""
    if not data:
        raise InvalidArgumentError("Empty image payload")

    frame = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
    if frame is None:
        raise InvalidArgumentError("Image payload could not be decoded")
    return frame


def create_classifier(kind: str, model_name: str = "yolo11n.pt", device: str = "cpu") -> CatClassifier:
    """Build the classifier named in settings ("fake" or "yolo")."""
    if kind == "fake":
        return FakeCatClassifier()
    if kind == "yolo":
        return YoloCatClassifier(model_name=model_name, device=device)
    raise InvalidArgumentError(f"Unknown classifier: {kind!r}")
