import logging

import numpy as np

from graph_inpainting.models.errors import SchedulerInvariantError

logger = logging.getLogger(__name__)


def retrieve_patch(neighbors, weights, patches, patch_area, mode="copy"):
    """
    Retrieve the content used to fill a patch from its graph neighbours.

    Only neighbours whose patch is fully known can be used as a source.

    Parameters:
    neighbors (numpy.ndarray): Neighbour vertex indices.
    weights (numpy.ndarray): Edge weights towards the neighbours.
    patches (numpy.ndarray): Patch features.
    patch_area (int): Number of pixels in a patch.
    mode (str): 'copy' the neighbour with the strongest edge or 'average' the
        neighbours weighted by their edges.

    Returns:
    numpy.ndarray: Patch content of length patch_area, or None without any source.
    """
    neighbors = np.asarray(neighbors, dtype=np.int64)
    weights = np.asarray(weights, dtype=np.float64)

    values = patches[neighbors, :patch_area]
    complete = np.all(values >= 0, axis=1) & (weights > 0)
    if not np.any(complete):
        return None
    values, weights = values[complete], weights[complete]

    if mode == "copy":
        # argmax keeps the first maximum, neighbours are sorted by index.
        return values[np.argmax(weights)].copy()
    elif mode == "average":
        return weights @ values / weights.sum()
    else:
        raise ValueError(f"Unknown retrieve mode '{mode}'")


def compose_patch(pixels, footprint, content, mode="overwrite"):
    """
    Write retrieved content into the pixels covered by a patch, in place.

    Parameters:
    pixels (numpy.ndarray): Pixel vector, negative values are unknown.
    footprint (numpy.ndarray): Pixel indices covered by the patch.
    content (numpy.ndarray): Retrieved patch content, aligned with footprint.
    mode (str): 'overwrite' every pixel or only fill unknown pixels ('keep-known').

    Returns:
    numpy.ndarray: Indices of the pixels that were written.
    """
    if np.any(content < 0):
        raise SchedulerInvariantError("Retrieved patch content contains unknown pixels.")

    if mode == "overwrite":
        target = np.ones(len(footprint), dtype=bool)
    elif mode == "keep-known":
        target = pixels[footprint] < 0
    else:
        raise ValueError(f"Unknown compose mode '{mode}'")

    pixels[footprint[target]] = content[target]
    return np.unique(footprint[target])


class Compositor:
    """
    Fill the patch of a selected vertex and propagate the change to the patch
    matrix, the information priorities and the unknown pixel counts.
    """

    def __init__(self, params, shape, footprint):
        self.params = params
        self.shape = shape
        self.footprint = footprint

    def affected_patches(self, vertex):
        """
        Patches whose footprint may overlap the footprint of a vertex: every vertex
        within two half patches, clamped footprints included.
        """
        height, width = self.shape
        reach = 2 * (self.params.patch_size // 2)
        row, col = divmod(vertex, width)
        rows = np.arange(max(0, row - reach), min(height, row + reach + 1))
        cols = np.arange(max(0, col - reach), min(width, col + reach + 1))
        return (rows[:, None] * width + cols[None, :]).ravel()

    def inpaint(self, vertex, graph, pixels, patches, priorities, counts=None):
        """
        Inpaint the patch of a vertex from its neighbours.

        Returns:
        numpy.ndarray: Indices of the pixels that were written (empty when the
        vertex has no usable neighbour).
        """
        area = self.params.patch_area
        neighbors, weights = graph.neighbors(vertex)
        content = retrieve_patch(neighbors, weights, patches, area, self.params.retrieve)
        if content is None:
            logger.warning(f"Vertex {vertex} has no fully known neighbour, nothing to copy.")
            return np.empty(0, dtype=np.int64)

        known_before = np.count_nonzero(pixels >= 0)
        written = compose_patch(pixels, self.footprint[vertex], content, self.params.compose)

        affected = self.affected_patches(vertex)
        patches[affected, :area] = pixels[self.footprint[affected]]
        priorities.update_information(written, affected, pixels)
        if counts is not None:
            counts[affected] = np.count_nonzero(patches[affected, :area] < 0, axis=1)

        if np.count_nonzero(pixels >= 0) < known_before:
            raise SchedulerInvariantError(f"Inpainting vertex {vertex} reduced the number of known pixels.")

        return written
