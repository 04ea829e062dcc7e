import logging
import time
from typing import Optional

import numpy as np

from graph_inpainting.models.errors import ConfigurationError
from graph_inpainting.models.params import InpaintingParams
from graph_inpainting.models.patch_graph import build_patch_graph
from graph_inpainting.models.patches import observe, extract_patches
from graph_inpainting.models.refinement import GlobalRefiner
from graph_inpainting.models.scheduler import InpaintingScheduler

logger = logging.getLogger(__name__)


class GraphInpainter:
    def __init__(self, image, omega, params: Optional[InpaintingParams] = None):
        """
        Initialize the graph inpainting algorithm.

        Args:
            image: Grayscale image with intensities in [0, 1]
            omega: Binary mask where 1 indicates pixels to be inpainted
            params: Algorithm parameters (default: InpaintingParams())
        """
        self.params = params or InpaintingParams()
        self.params.validate()

        image = np.asarray(image, dtype=np.float64)
        if image.ndim != 2:
            raise ConfigurationError(f"Expected a 2-D grayscale image, got shape {image.shape}.")
        known = ~np.asarray(omega, dtype=bool)
        if known.shape == image.shape and np.any((image[known] < 0) | (image[known] > 1)):
            raise ConfigurationError("Known intensities must lie in [0, 1].")

        self.shape = image.shape
        self.observed = observe(image, omega)

        self.graph = None
        self.scheduler = None
        self.refinement = None

        # Performance tracking
        self.timing_stats = {
            'create_graph': None,
            'iterative_inpainting': None,
            'global_optimization': None,
        }

    def initialize(self):
        """Extract the patches and build the patch graph of the known patches."""
        tstart = time.perf_counter()

        self.patches, self.pixels, self.footprint = extract_patches(self.observed, self.params.patch_size)
        self.graph = build_patch_graph(self.patches, self.shape, self.params)

        self.timing_stats['create_graph'] = time.perf_counter() - tstart
        logger.info(f"Time to create graph : {self.timing_stats['create_graph']:f} seconds")

    def inpaint(self, on_step=None):
        """
        Iteratively connect and inpaint the unknown patches.

        Returns:
            The inpainted image, unknown pixels that could not be reached keep a
            negative value.
        """
        if self.graph is None:
            self.initialize()

        tstart = time.perf_counter()
        self.scheduler = InpaintingScheduler(
            self.graph, self.patches, self.pixels, self.footprint, self.params, on_step=on_step
        )
        self.scheduler.run()

        self.timing_stats['iterative_inpainting'] = time.perf_counter() - tstart
        logger.info(f"Iterative inpainting : {self.timing_stats['iterative_inpainting']:f}")
        return self.image

    def refine(self, verbosity="NONE"):
        """
        Inpaint again the image by convex optimization on the final graph.

        Returns:
            The globally optimized image.
        """
        if self.scheduler is None:
            self.inpaint()

        tstart = time.perf_counter()
        refiner = GlobalRefiner(self.graph, self.observed, self.params)
        self.refinement = refiner.solve(verbosity=verbosity)

        self.timing_stats['global_optimization'] = time.perf_counter() - tstart
        logger.info(
            f"Global optimization : {self.timing_stats['global_optimization']:f} "
            f"({self.refinement.iterations} iterations)"
        )
        return self.refined

    def run(self, refine=True):
        self.initialize()
        self.inpaint()
        if refine:
            self.refine()
        return self

    @property
    def image(self):
        return self.pixels.reshape(self.shape)

    @property
    def refined(self):
        if self.refinement is None:
            return None
        return self.refinement.sol.reshape(self.shape)

    @property
    def structure_priority(self):
        """Structure priorities, NaN where they were never computed."""
        engine = self.scheduler.priorities
        return np.where(engine.defined, engine.structure, np.nan).reshape(self.shape)

    @property
    def information_priority(self):
        """Pixel and patch information priorities, as two images."""
        info = self.scheduler.priorities.information
        return info[:, 0].reshape(self.shape), info[:, 1].reshape(self.shape)

    @property
    def inpainted_order(self):
        return list(self.scheduler.inpainted)

    @property
    def residual(self):
        """Vertices with missing pixels that were never inpainted."""
        return list(self.scheduler.residual)

    def reconstruction_errors(self, ground_truth):
        """
        L2 reconstruction errors of the observed, inpainted and refined images.

        Unknown pixels count as 0 in the observed image, as in y = M x.
        """
        truth = np.asarray(ground_truth, dtype=np.float64).ravel()
        y = np.where(self.observed.ravel() >= 0, self.observed.ravel(), 0.0)
        errors = {
            'observed': float(np.linalg.norm(truth - y)),
            'inpainted': float(np.linalg.norm(truth - self.pixels)),
        }
        if self.refinement is not None:
            errors['refined'] = float(np.linalg.norm(truth - self.refinement.sol))
        for name, value in errors.items():
            logger.info(f"{name.capitalize()} reconstruction error (L2-norm) : {value:f}")
        return errors
