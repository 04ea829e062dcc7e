import numpy as np
import pytest

from graph_inpainting.models.errors import SchedulerInvariantError
from graph_inpainting.models.params import InpaintingParams
from graph_inpainting.models.patch_graph import build_patch_graph
from graph_inpainting.models.patches import extract_patches, observe, unknown_counts
from graph_inpainting.models.scheduler import InpaintingScheduler, VertexState


def make_scheduler(image, omega, on_step=None, **kwargs):
    params = InpaintingParams(**kwargs)
    patches, pixels, footprint = extract_patches(observe(image, omega), params.patch_size)
    graph = build_patch_graph(patches, image.shape, params)
    return InpaintingScheduler(graph, patches, pixels, footprint, params, on_step=on_step)


def test_hole_is_filled(stripes):
    image, omega = stripes
    scheduler = make_scheduler(image, omega, patch_size=3, knn=4)
    incomplete = np.flatnonzero(scheduler.counts > 0)

    order = scheduler.run()

    assert np.all(scheduler.pixels[omega.ravel()] >= 0)
    assert len(order) == len(set(order))
    assert sorted(order) == incomplete.tolist()
    assert scheduler.residual == []
    assert scheduler.frontier == []
    assert np.all(scheduler.vertex_states()[incomplete] == VertexState.INPAINTED)


def test_each_selection_is_the_current_maximum(stripes):
    image, omega = stripes
    scheduler = make_scheduler(image, omega, patch_size=3, knn=4)
    engine = scheduler.priorities
    select = engine.select
    snapshots = []

    def recording_select():
        combined = engine.combined()
        vertex = select()
        snapshots.append((combined, vertex))
        return vertex

    engine.select = recording_select
    scheduler.run()

    selected = [vertex for _, vertex in snapshots if vertex is not None]
    assert selected == scheduler.inpainted
    for combined, vertex in snapshots:
        if vertex is None:
            assert not np.any(np.isfinite(combined))
            continue
        best = combined.max()
        assert combined[vertex] == best
        assert vertex == np.flatnonzero(combined == best)[0]


def test_states_partition_the_vertices_at_every_step(stripes):
    image, omega = stripes
    known_counts = []
    seen = []

    def check(scheduler, vertex):
        scheduler.check_partition()
        states = scheduler.vertex_states()
        assert states[vertex] == VertexState.INPAINTED
        assert np.all(states[scheduler.frontier] == VertexState.FRONTIER)
        assert vertex not in seen
        seen.append(vertex)
        known_counts.append(np.count_nonzero(scheduler.pixels >= 0))

    scheduler = make_scheduler(image, omega, on_step=check, patch_size=3, knn=4)
    scheduler.run()

    assert seen == scheduler.inpainted
    assert len(seen) <= scheduler.graph.N
    assert np.all(np.diff(known_counts) >= 0)


def test_incremental_counts_match_recomputed_counts(stripes):
    image, omega = stripes
    incremental = make_scheduler(image, omega, patch_size=3, knn=4, incremental_counts=True)
    recomputed = make_scheduler(image, omega, patch_size=3, knn=4, incremental_counts=False)

    assert incremental.run() == recomputed.run()
    np.testing.assert_array_equal(incremental.pixels, recomputed.pixels)
    np.testing.assert_array_equal(incremental.counts, unknown_counts(incremental.patches, 3))


def test_revisiting_a_vertex_is_detected(stripes):
    image, omega = stripes
    scheduler = make_scheduler(image, omega, patch_size=3, knn=4)
    vertex = scheduler.step()
    assert vertex is not None

    scheduler.frontier.append(vertex)
    with pytest.raises(SchedulerInvariantError):
        scheduler.step()


def test_mismatched_sizes_are_rejected(stripes):
    image, omega = stripes
    params = InpaintingParams(patch_size=3, knn=4)
    patches, pixels, footprint = extract_patches(observe(image, omega), 3)
    graph = build_patch_graph(patches, image.shape, params)
    with pytest.raises(SchedulerInvariantError):
        InpaintingScheduler(graph, patches, pixels[:-1], footprint, params)


def test_unreachable_vertices_are_residual():
    image = np.tile(np.linspace(0.0, 1.0, 10), (10, 1))
    omega = np.zeros_like(image, dtype=bool)
    # Every patch touching the stripe misses at least three pixels.
    omega[4:6, :] = True
    scheduler = make_scheduler(image, omega, patch_size=3, knn=4, max_unknown_pixels=1)
    incomplete = np.flatnonzero(scheduler.counts > 0)

    assert scheduler.run() == []
    assert scheduler.residual == incomplete.tolist()
    assert np.all(scheduler.pixels[omega.ravel()] < 0)
