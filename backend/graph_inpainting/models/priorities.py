import numpy as np
from scipy import sparse


def cheby_coeff(g, lmax, order, n_points=None):
    """
    Chebyshev coefficients of a spectral kernel on [0, lmax].

    Parameters:
    g (callable): Kernel evaluated on eigenvalues.
    lmax (float): Upper bound of the spectrum.
    order (int): Order of the polynomial approximation.
    n_points (int): Number of quadrature points (default order + 1).

    Returns:
    numpy.ndarray: order + 1 coefficients.
    """
    n_points = n_points or order + 1
    a1 = a2 = lmax / 2.0
    theta = np.pi * (np.arange(n_points) + 0.5) / n_points
    values = g(a1 * np.cos(theta) + a2)
    j = np.arange(order + 1)[:, None]
    return 2.0 / n_points * (np.cos(j * theta[None, :]) @ values)


def cheby_op(L, coeffs, lmax, signal):
    """
    Apply the Chebyshev expansion of a kernel to a graph signal with the three-term
    recurrence, without diagonalizing the Laplacian.
    """
    signal = np.asarray(signal, dtype=np.float64)
    if lmax <= 0:
        # Edgeless graph: L = 0 and g(L) = g(0) I.
        return _cheby_at_zero(coeffs) * signal

    a1 = a2 = lmax / 2.0
    t_prev = signal
    result = 0.5 * coeffs[0] * t_prev
    if len(coeffs) == 1:
        return result

    t_curr = (L @ t_prev - a2 * t_prev) / a1
    result = result + coeffs[1] * t_curr
    for c in coeffs[2:]:
        t_next = 2.0 / a1 * (L @ t_curr - a2 * t_curr) - t_prev
        result = result + c * t_next
        t_prev, t_curr = t_curr, t_next
    return result


def _cheby_at_zero(coeffs):
    # T_j(-1) = (-1)^j, eigenvalue 0 maps to -1 on the Chebyshev interval.
    signs = (-1.0) ** np.arange(len(coeffs))
    return 0.5 * coeffs[0] + np.sum(coeffs[1:] * signs[1:])


def heat_diffusion(graph, signal, heat_scale, order):
    """
    Approximate exp(-heat_scale * L / lmax) applied to a signal.

    Parameters:
    graph (PatchGraph): Graph to diffuse on.
    signal (numpy.ndarray): Signal on the vertices.
    heat_scale (float): Diffusion time, relative to lmax.
    order (int): Order of the Chebyshev approximation (number of hops).

    Returns:
    numpy.ndarray: Diffused signal.
    """
    lmax = graph.lmax_bound()
    signal = np.asarray(signal, dtype=np.float64)
    if lmax <= 0:
        # No edges: the heat kernel is the identity.
        return signal.copy()
    coeffs = cheby_coeff(lambda x: np.exp(-heat_scale * x / lmax), lmax, order)
    return cheby_op(graph.laplacian(), coeffs, lmax, signal)


class PriorityEngine:
    """
    Structure and information priorities of the vertices.

    Structure priority is the energy that diffuses from the resolved vertices to a
    vertex over the patch graph. It is only defined for vertices that have been
    connected; the `defined` tag replaces any NaN convention. Information priority
    has a pixel channel (known indicator) and a patch channel (known fraction of
    the patch footprint).
    """

    def __init__(self, pixels, footprint, params):
        self.params = params
        self.footprint = footprint
        N = len(pixels)

        self.structure = np.zeros(N, dtype=np.float64)
        self.defined = np.zeros(N, dtype=bool)
        self.disqualified = np.zeros(N, dtype=bool)

        self.information = np.zeros((N, 2), dtype=np.float64)
        self.information[:, 0] = pixels >= 0
        self.information[:, 1] = self.information[footprint, 0].mean(axis=1)

    def update_structure(self, vertices, graph, resolved):
        """
        Diffuse the resolved indicator and store the priority of the given vertices.

        Parameters:
        vertices (array-like): Newly connected vertices.
        graph (PatchGraph): Current graph.
        resolved (numpy.ndarray): Boolean indicator of known or inpainted vertices.
        """
        vertices = np.asarray(vertices, dtype=np.int64)
        if vertices.size == 0:
            return
        energy = heat_diffusion(graph, resolved.astype(np.float64),
                                self.params.heat_scale, self.params.cheb_order)
        energy = np.abs(energy[vertices])
        energy[energy < self.params.priority_threshold] = 0.0
        self.structure[vertices] = energy
        self.defined[vertices] = True

    def update_information(self, pixel_indices, patch_indices, pixels):
        """Refresh both information channels after pixels changed."""
        self.information[pixel_indices, 0] = pixels[pixel_indices] >= 0
        self.information[patch_indices, 1] = self.information[self.footprint[patch_indices], 0].mean(axis=1)

    def combined(self):
        """
        Structure times patch information priority. Vertices without a defined
        structure priority, or already selected, are -inf so they can never win.
        """
        eligible = self.defined & ~self.disqualified
        return np.where(eligible, self.structure * self.information[:, 1], -np.inf)

    def select(self):
        """
        Vertex with the highest combined priority, lowest index on ties, or None
        when no vertex is eligible.
        """
        combined = self.combined()
        vertex = int(np.argmax(combined))
        if not np.isfinite(combined[vertex]):
            return None
        return vertex

    def disqualify(self, vertex):
        """A selected vertex keeps its priority value but is never selected again."""
        self.disqualified[vertex] = True
