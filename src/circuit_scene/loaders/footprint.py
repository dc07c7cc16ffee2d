"""Footprint loader: synthesises a mesh from a footprint descriptor string."""
import asyncio
from typing import Callable, Optional

import logging

from circuit_scene.cache import SingleFlightCache
from circuit_scene.coordinate_transform import (
    COORDINATE_TRANSFORMS, CoordinateTransform, transform_mesh,
)
from circuit_scene.loaders.base import transform_cache_key
from circuit_scene.loaders.footprint_models import generate_footprint_model
from circuit_scene.mesh import Mesh

logger = logging.getLogger(__name__)

FootprintGenerator = Callable[[str], Optional[Mesh]]


class FootprintLoader:
    """Wraps a footprint generator with the shared caching layer.

    The generator returns a Z-up mesh or None when it does not know the
    descriptor; None is cached too.
    """

    name = "footprint"
    default_transform = COORDINATE_TRANSFORMS["FOOTPRINTER_MODEL_TRANSFORM"]

    def __init__(self, generator: FootprintGenerator = generate_footprint_model,
                 cache: Optional[SingleFlightCache] = None):
        self.generator = generator
        self.cache = cache if cache is not None else SingleFlightCache(name="footprint cache")

    async def load(self, footprint: str,
                   transform: Optional[CoordinateTransform] = None) -> Optional[Mesh]:
        effective = transform if transform is not None else self.default_transform
        key = (footprint, transform_cache_key(effective))
        mesh = await self.cache.get_or_load(key, lambda: self._generate(footprint, effective))
        return mesh.copy() if mesh is not None else None

    async def _generate(self, footprint: str,
                        transform: Optional[CoordinateTransform]) -> Optional[Mesh]:
        logger.info("Generating footprint model: %s", footprint)
        mesh = await asyncio.to_thread(self.generator, footprint)
        if mesh is None or mesh.triangle_count == 0:
            logger.debug("No footprint model for %r", footprint)
            return None
        return transform_mesh(mesh, transform)

    def clear_cache(self) -> None:
        self.cache.clear()
