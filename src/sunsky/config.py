"""Frame parameters for the path tracer.

These dataclasses hold everything that stays constant during one frame:
the sun, the sky and the integrator switches. They are plain host objects;
``integrator.apply_settings``, ``sun.setup_sun`` and ``sky.setup_sky`` copy
them into Taichi fields before a render.

Example:
    >>> from sunsky.config import RenderSettings, SunParameters
    >>> settings = RenderSettings(max_depth=8, seed=7)
    >>> settings.validate()
    >>> sun = SunParameters.from_dict({"enabled": True, "elevation": 0.6})
"""

import math
from dataclasses import asdict, dataclass, field, fields
from enum import IntEnum
from typing import Any

# Angular diameter of the real sun, 0.53 degrees
DEFAULT_SUN_ANGLE = 0.0093

# Upper bound on the bounce loop compiled into the kernel
MAX_DEPTH_LIMIT = 64


class SamplerKind(IntEnum):
    """Source of the per-bounce uniform variates."""

    INDEPENDENT = 0
    ORTHOGONAL_ARRAY = 1


class PixelFilter(IntEnum):
    """Reconstruction filter used to jitter camera rays."""

    BOX = 0
    TENT = 1


def _check_color(name: str, color: tuple[float, ...]) -> None:
    if len(color) != 3:
        raise ValueError(f"{name} must have 3 components, got {len(color)}")
    if any(not math.isfinite(c) or c < 0.0 for c in color):
        raise ValueError(f"{name} components must be finite and non-negative, got {color}")


def _from_dict(cls, data: dict[str, Any]):
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown {cls.__name__} keys: {sorted(unknown)}")
    kwargs = {}
    for key, value in data.items():
        kwargs[key] = tuple(value) if isinstance(value, list) else value
    return cls(**kwargs)


@dataclass
class SunParameters:
    """Analytic sun disc.

    Attributes:
        enabled: Whether the sun contributes light.
        elevation: Angle above the horizon in radians.
        azimuth: Rotation around +y in radians, measured from +z toward +x.
        angle: Angular diameter of the disc in radians.
        color: Linear RGB tint.
        strength: Radiance multiplier.
    """

    enabled: bool = False
    elevation: float = math.pi / 4.0
    azimuth: float = 0.0
    angle: float = DEFAULT_SUN_ANGLE
    color: tuple[float, float, float] = (1.0, 1.0, 1.0)
    strength: float = 1.0

    def validate(self) -> None:
        """Raise ValueError if a parameter is out of range."""
        if not 0.0 < self.angle < math.pi:
            raise ValueError(f"Sun angle must be in (0, pi), got {self.angle}")
        if not math.isfinite(self.elevation) or not math.isfinite(self.azimuth):
            raise ValueError("Sun elevation and azimuth must be finite")
        if not math.isfinite(self.strength) or self.strength < 0.0:
            raise ValueError(f"Sun strength must be non-negative, got {self.strength}")
        _check_color("Sun color", self.color)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SunParameters":
        return _from_dict(cls, data)


@dataclass
class SkyParameters:
    """Image-based sky dome.

    The image itself is passed to ``setup_sky`` separately; these are the
    scalar controls.

    Attributes:
        enabled: Whether the sky contributes light.
        strength: Radiance multiplier applied to the image.
        rotation: Rotation of the dome around +y in radians.
    """

    enabled: bool = False
    strength: float = 1.0
    rotation: float = 0.0

    def validate(self) -> None:
        if not math.isfinite(self.strength) or self.strength < 0.0:
            raise ValueError(f"Sky strength must be non-negative, got {self.strength}")
        if not math.isfinite(self.rotation):
            raise ValueError("Sky rotation must be finite")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SkyParameters":
        return _from_dict(cls, data)


@dataclass
class RenderSettings:
    """Integrator switches.

    Attributes:
        max_depth: Number of path vertices; 1 computes direct lighting only.
        seed: User seed. Equal seeds give identical images.
        nee: Enable next-event estimation against the sun and the sky.
        rr_start_depth: Number of bounces after which Russian roulette may
            end a path.
        rr_forced_survival: If >= 0, use this survival probability instead of
            the throughput-based one. Negative means disabled.
        mis_light_probability: Probability of choosing the light strategy in
            one-sample MIS.
        sampler: Source of the per-bounce variates.
        pixel_filter: Camera ray jitter.
        background: Radiance returned by misses when the sky is disabled.
    """

    max_depth: int = 1
    seed: int = 0
    nee: bool = True
    rr_start_depth: int = 3
    rr_forced_survival: float = -1.0
    mis_light_probability: float = 0.5
    sampler: SamplerKind = SamplerKind.INDEPENDENT
    pixel_filter: PixelFilter = PixelFilter.BOX
    background: tuple[float, float, float] = field(default=(0.0, 0.0, 0.0))

    def validate(self) -> None:
        """Raise ValueError if a setting is out of range."""
        if not 1 <= self.max_depth <= MAX_DEPTH_LIMIT:
            raise ValueError(f"max_depth must be in [1, {MAX_DEPTH_LIMIT}], got {self.max_depth}")
        if self.seed < 0:
            raise ValueError(f"seed must be non-negative, got {self.seed}")
        if self.rr_start_depth < 1:
            raise ValueError(f"rr_start_depth must be >= 1, got {self.rr_start_depth}")
        if self.rr_forced_survival > 1.0:
            raise ValueError(
                f"rr_forced_survival must be <= 1 (negative disables it), got {self.rr_forced_survival}"
            )
        if self.rr_forced_survival == 0.0:
            raise ValueError("rr_forced_survival of 0 would end every path")
        if not 0.0 < self.mis_light_probability < 1.0:
            raise ValueError(
                f"mis_light_probability must be in (0, 1), got {self.mis_light_probability}"
            )
        _check_color("Background", self.background)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["sampler"] = SamplerKind(self.sampler).name.lower()
        data["pixel_filter"] = PixelFilter(self.pixel_filter).name.lower()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RenderSettings":
        data = dict(data)
        if isinstance(data.get("sampler"), str):
            data["sampler"] = SamplerKind[data["sampler"].upper()]
        if isinstance(data.get("pixel_filter"), str):
            data["pixel_filter"] = PixelFilter[data["pixel_filter"].upper()]
        return _from_dict(cls, data)
