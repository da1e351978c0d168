"""Progressive renderer for iterative sample accumulation.

This module wraps the integrator's accumulation target with a small driver:
passes run one after another, each with its own pass index, and the mean
image can be read or saved at any point. Resetting clears the sums and
restarts the pass index, so a reset render with the same settings is
reproduced exactly.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from sunsky.config import RenderSettings
    >>> from sunsky.core.progressive import ProgressiveRenderer
    >>> from sunsky.scene.demo import create_demo_scene
    >>>
    >>> scene, camera = create_demo_scene()
    >>> renderer = ProgressiveRenderer(320, 240, RenderSettings(max_depth=6))
    >>> renderer.render(64, batch_size=16)
    >>> image = renderer.get_image_numpy()
"""

import logging
from collections.abc import Callable, Generator

import numpy as np
import numpy.typing as npt

from sunsky.config import RenderSettings
from sunsky.core.integrator import (
    apply_settings,
    clear_render_target,
    get_image_numpy,
    get_total_samples,
    render_image,
    save_image,
    setup_render_target,
    to_display,
)

logger = logging.getLogger(__name__)

# Callback receives (current_samples, total_target_samples)
ProgressCallback = Callable[[int, int], None]


class ProgressiveRenderer:
    """Accumulates sample passes into the integrator's render target.

    Attributes:
        width: Image width in pixels.
        height: Image height in pixels.
        settings: Integrator settings pushed before the first pass.
    """

    def __init__(self, width: int, height: int, settings: RenderSettings | None = None) -> None:
        """Set up the render target and apply the settings.

        Raises:
            ValueError: If the dimensions or settings are invalid.
        """
        self._width = width
        self._height = height
        self.settings = settings if settings is not None else RenderSettings()
        apply_settings(self.settings)
        setup_render_target(width, height)

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def sample_count(self) -> int:
        """Number of accumulated samples per pixel."""
        return get_total_samples()

    def reset(self) -> None:
        """Clear the accumulator without changing the image size."""
        clear_render_target()

    def update_settings(self, settings: RenderSettings) -> None:
        """Apply new settings; the accumulated image no longer matches, so reset."""
        apply_settings(settings)
        self.settings = settings
        self.reset()

    def resize(self, width: int, height: int) -> None:
        """Resize the render target and reset the accumulator.

        Raises:
            ValueError: If dimensions exceed maximum supported size.
        """
        setup_render_target(width, height)
        self._width = width
        self._height = height

    def render(
        self,
        num_samples: int = 1,
        batch_size: int = 1,
        callback: ProgressCallback | None = None,
    ) -> None:
        """Add ``num_samples`` passes, calling ``callback`` after each batch.

        Args:
            num_samples: Total number of samples to add.
            batch_size: Number of passes per batch.
            callback: Optional function receiving (current, target) sample
                counts after each batch.
        """
        for current, target in self.render_progressive(num_samples, batch_size):
            if callback is not None:
                callback(current, target)

    def render_progressive(
        self,
        num_samples: int = 1,
        batch_size: int = 1,
    ) -> Generator[tuple[int, int], None, None]:
        """Render in batches, yielding (current, target) sample counts.

        Example:
            >>> for current, target in renderer.render_progressive(100, batch_size=10):
            ...     print(f"Progress: {current}/{target} samples")
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        if num_samples <= 0:
            return

        target_samples = self.sample_count + num_samples
        remaining = num_samples
        while remaining > 0:
            batch = min(batch_size, remaining)
            render_image(batch)
            remaining -= batch
            logger.debug("progress %d/%d", self.sample_count, target_samples)
            yield (self.sample_count, target_samples)

    def get_image_numpy(self) -> npt.NDArray[np.float32]:
        """Mean linear radiance, shape (height, width, 3), row 0 on top."""
        return get_image_numpy()

    def get_image_uint8(self, gamma: float = 2.2, exposure: float = 1.0) -> npt.NDArray[np.uint8]:
        """Display-ready 8-bit image with a plain gamma curve."""
        return to_display(self.get_image_numpy(), gamma, exposure)

    def save_image(self, filepath: str, gamma: float = 2.2, exposure: float = 1.0) -> None:
        save_image(filepath, gamma, exposure)

    def __repr__(self) -> str:
        return (
            f"ProgressiveRenderer(width={self.width}, height={self.height}, "
            f"samples={self.sample_count})"
        )
