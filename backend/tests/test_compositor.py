import numpy as np
import pytest
from scipy import sparse

from graph_inpainting.models.compositor import Compositor, compose_patch, retrieve_patch
from graph_inpainting.models.errors import SchedulerInvariantError
from graph_inpainting.models.params import InpaintingParams
from graph_inpainting.models.patch_graph import PatchGraph
from graph_inpainting.models.patches import UNKNOWN_PIXEL, extract_patches, unknown_counts
from graph_inpainting.models.priorities import PriorityEngine


def test_copy_takes_the_strongest_neighbor():
    patches = np.array([[0.1, 0.1], [0.2, 0.2], [0.3, 0.3], [0.4, 0.4]])
    content = retrieve_patch([1, 2, 3], [0.2, 0.9, 0.5], patches, 2, "copy")
    np.testing.assert_array_equal(content, [0.3, 0.3])


def test_copy_ties_go_to_the_lowest_index():
    patches = np.array([[0.1], [0.2], [0.3]])
    assert retrieve_patch([1, 2], [0.5, 0.5], patches, 1, "copy")[0] == 0.2


def test_average_weights_the_neighbors():
    patches = np.array([[0.0, 1.0], [1.0, 0.0], [0.5, 0.5]])
    content = retrieve_patch([0, 1], [1.0, 3.0], patches, 2, "average")
    np.testing.assert_allclose(content, [0.75, 0.25])


def test_incomplete_neighbors_are_not_sources():
    patches = np.array([[UNKNOWN_PIXEL, 1.0], [0.2, 0.2]])
    content = retrieve_patch([0, 1], [0.9, 0.1], patches, 2, "copy")
    np.testing.assert_array_equal(content, [0.2, 0.2])
    assert retrieve_patch([0], [0.9], patches, 2, "copy") is None


def test_keep_known_only_changes_unknown_pixels():
    rng = np.random.default_rng(0)
    pixels = rng.random(9)
    pixels[[2, 6]] = UNKNOWN_PIXEL
    before = pixels.copy()
    footprint = np.arange(9)
    content = np.full(9, 0.5)

    written = compose_patch(pixels, footprint, content, "keep-known")

    np.testing.assert_array_equal(written, [2, 6])
    known = np.setdiff1d(footprint, [2, 6])
    # Bit-identical, not approximately equal.
    assert np.array_equal(pixels[known], before[known])
    np.testing.assert_array_equal(pixels[[2, 6]], [0.5, 0.5])


def test_overwrite_replaces_the_whole_footprint():
    pixels = np.array([0.1, UNKNOWN_PIXEL, 0.3])
    written = compose_patch(pixels, np.array([0, 1, 2]), np.array([0.7, 0.8, 0.9]), "overwrite")
    np.testing.assert_array_equal(written, [0, 1, 2])
    np.testing.assert_array_equal(pixels, [0.7, 0.8, 0.9])


def test_unknown_content_is_rejected():
    pixels = np.array([UNKNOWN_PIXEL, 0.3])
    with pytest.raises(SchedulerInvariantError):
        compose_patch(pixels, np.array([0, 1]), np.array([UNKNOWN_PIXEL, 0.2]), "overwrite")


@pytest.mark.parametrize("compose", ["overwrite", "keep-known"])
def test_inpaint_updates_overlapping_patches(compose):
    params = InpaintingParams(patch_size=3, knn=1, compose=compose)
    observed = np.linspace(0.0, 1.0, 25).reshape(5, 5)
    observed[2, 2] = UNKNOWN_PIXEL
    observed[2, 3] = UNKNOWN_PIXEL
    patches, pixels, footprint = extract_patches(observed, 3)

    graph = PatchGraph(sparse.csr_matrix((25, 25)), (5, 5))
    # Vertex 12 (row 2, column 2) has a single known neighbour, vertex 0.
    graph.set_edges(12, [0], [1.0])

    priorities = PriorityEngine(pixels, footprint, params)
    counts = unknown_counts(patches, 3)
    known_before = np.count_nonzero(pixels >= 0)

    Compositor(params, (5, 5), footprint).inpaint(12, graph, pixels, patches, priorities, counts)

    assert np.count_nonzero(pixels >= 0) >= known_before
    assert pixels[12] >= 0 and pixels[13] >= 0
    # Every patch row agrees with the pixels it covers.
    np.testing.assert_array_equal(patches[:, :9], pixels[footprint])
    np.testing.assert_array_equal(counts, unknown_counts(patches, 3))
    np.testing.assert_array_equal(priorities.information[:, 0], pixels >= 0)
    np.testing.assert_allclose(priorities.information[:, 1], (pixels >= 0)[footprint].mean(axis=1))
