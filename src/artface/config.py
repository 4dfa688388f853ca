"""Configuration models.

Everything the engine needs (weights paths, device selector, thresholds) is
supplied once at construction time; there is no runtime reconfiguration.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from .backends.backend_exceptions import ConfigError


class DetectorSettings(BaseModel):
    """Face detector configuration."""

    kind: Literal["grid", "named"] = "grid"
    model_path: Path
    input_size: int = Field(default=640, gt=0)
    confidence_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    nms_threshold: float = Field(default=0.4, gt=0.0, le=1.0)
    min_face_size: int = Field(default=10, ge=1)


class EncoderSettings(BaseModel):
    """Embedding encoder configuration."""

    model_path: Path
    input_size: int = Field(gt=0)
    embedding_dim: int = Field(gt=0)
    channel_order: Literal["rgb", "bgr"] = "rgb"


class CropSettings(BaseModel):
    """Face crop configuration."""

    padding_ratio: float = Field(default=0.3, ge=0.2, le=0.3)
    storage_size: int | None = Field(default=256, gt=0)
    jpeg_quality: int = Field(default=90, ge=1, le=100)
    align: bool = True


class FaceEngineConfig(BaseModel):
    """Root configuration for a FaceEngine."""

    device: str = "cuda"
    device_id: int = Field(default=0, ge=0)
    detector: DetectorSettings
    identity_encoder: EncoderSettings | None = None
    universal_encoder: EncoderSettings | None = None
    crop: CropSettings = Field(default_factory=CropSettings)
    cluster_threshold: float = Field(default=0.6, ge=-1.0, le=1.0)
    similarity_threshold: float = Field(default=0.6, ge=-1.0, le=1.0)
    max_similar_results: int = Field(default=100, ge=1)
    classify_style: bool = True

    @model_validator(mode="after")
    def check_distinct_encoders(self) -> "FaceEngineConfig":
        if (
            self.identity_encoder is not None
            and self.universal_encoder is not None
            and self.identity_encoder.model_path == self.universal_encoder.model_path
        ):
            raise ValueError("identity and universal encoders must use different weights")
        return self

    @classmethod
    def from_yaml(cls, config_path: Path | str) -> "FaceEngineConfig":
        """
        Load and validate a configuration file.

        Relative model paths are resolved against the file's directory.

        Raises:
            ConfigError: If the file is missing, is not valid YAML, or fails validation
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigError(f"Configuration file not found: {config_path}")

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML format: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Configuration root must be a mapping: {config_path}")

        try:
            config = cls(**data)
        except ValidationError as e:
            messages = [
                f"{err['msg']} (at: {'.'.join(str(p) for p in err['loc'])})"
                for err in e.errors()
            ]
            raise ConfigError("; ".join(messages)) from e

        return config.resolve_paths(config_path.parent)

    def resolve_paths(self, base_dir: Path | str) -> "FaceEngineConfig":
        """Return a copy with relative model paths anchored at ``base_dir``."""
        base_dir = Path(base_dir)

        def _anchor(path: Path) -> Path:
            path = path.expanduser()
            return path if path.is_absolute() else base_dir / path

        update: dict[str, object] = {
            "detector": self.detector.model_copy(
                update={"model_path": _anchor(self.detector.model_path)}
            )
        }
        for name in ("identity_encoder", "universal_encoder"):
            settings = getattr(self, name)
            if settings is not None:
                update[name] = settings.model_copy(
                    update={"model_path": _anchor(settings.model_path)}
                )
        return self.model_copy(update=update)

    @classmethod
    def create_default(
        cls, base_dir: Path | str, device: str = "cuda"
    ) -> "FaceEngineConfig":
        """Conventional model layout under ``base_dir``."""
        base_dir = Path(base_dir)
        onnx_dir = base_dir / "models" / "onnx"
        return cls(
            device=device,
            detector=DetectorSettings(
                kind="grid", model_path=onnx_dir / "yolo" / "yolov12m-face.onnx"
            ),
            identity_encoder=EncoderSettings(
                model_path=onnx_dir / "arcface" / "w600k_r50.onnx",
                input_size=112,
                embedding_dim=512,
            ),
            universal_encoder=EncoderSettings(
                model_path=onnx_dir / "clip" / "clip-vit-h-vision.onnx",
                input_size=224,
                embedding_dim=1280,
            ),
        )
