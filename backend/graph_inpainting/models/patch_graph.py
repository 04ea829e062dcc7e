import logging

import numpy as np
from scipy import sparse
from scipy.sparse.linalg import eigsh, ArpackNoConvergence
from scipy.spatial import KDTree

from graph_inpainting.models.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Smallest weight kept on a kNN edge, so that an edge never vanishes through underflow.
MIN_WEIGHT = np.finfo(np.float64).tiny


def gaussian_weights(dist2, sigma):
    """Gaussian kernel applied to squared distances."""
    return np.maximum(np.exp(-np.asarray(dist2) / sigma ** 2), MIN_WEIGHT)


class PatchGraph:
    """
    Undirected weighted graph with one vertex per pixel.

    The adjacency is kept in LIL format while the scheduler connects vertices and
    converted to CSR whenever an operator (Laplacian, gradient) is needed.
    """

    def __init__(self, W, shape):
        self.shape = tuple(shape)
        self.N = self.shape[0] * self.shape[1]
        if W.shape != (self.N, self.N):
            raise ConfigurationError(f"Weight matrix of shape {W.shape} does not match {self.N} vertices.")
        self._W = sparse.lil_matrix(W, dtype=np.float64)
        self._csr = None

        rows, cols = np.divmod(np.arange(self.N), self.shape[1])
        self.coords = np.column_stack([cols, rows])

    @property
    def W(self) -> sparse.csr_matrix:
        if self._csr is None:
            self._csr = self._W.tocsr()
        return self._csr

    @property
    def degrees(self) -> np.ndarray:
        return np.asarray(self.W.sum(axis=1)).ravel()

    @property
    def n_edges(self) -> int:
        return sparse.triu(self.W, k=1).nnz

    def laplacian(self) -> sparse.csr_matrix:
        """Combinatorial Laplacian L = D - W."""
        return (sparse.diags(self.degrees) - self.W).tocsr()

    def lmax_bound(self) -> float:
        """Gershgorin upper bound of the Laplacian spectrum."""
        return 2.0 * float(self.degrees.max(initial=0.0))

    def estimate_lmax(self) -> float:
        """
        Estimate the largest eigenvalue of the Laplacian.

        Falls back to the Gershgorin bound when ARPACK does not converge or the
        graph is too small for it.
        """
        if self.n_edges == 0:
            return 0.0
        if self.N < 3:
            return self.lmax_bound()
        try:
            lmax = eigsh(self.laplacian(), k=1, which="LM", tol=5e-3,
                         ncv=min(self.N - 1, 20), return_eigenvectors=False)[0]
        except ArpackNoConvergence:
            logger.warning("Lmax estimation did not converge, using the Gershgorin bound.")
            return self.lmax_bound()
        # Margin on the Arnoldi estimate.
        return min(1.01 * float(lmax), self.lmax_bound())

    def neighbors(self, vertex):
        """Neighbour indices and edge weights of a vertex, sorted by index."""
        row = self.W.getrow(vertex)
        order = np.argsort(row.indices)
        return row.indices[order], row.data[order]

    def differential_operator(self) -> sparse.csr_matrix:
        """
        Edge-vertex incidence D, one row per undirected edge (i < j) with
        sqrt(w) at i and -sqrt(w) at j, so that D^T D = L.
        """
        upper = sparse.triu(self.W, k=1).tocoo()
        n_edges = upper.nnz
        sqrt_w = np.sqrt(upper.data)
        edge = np.arange(n_edges)
        return sparse.csr_matrix(
            (np.concatenate([sqrt_w, -sqrt_w]),
             (np.concatenate([edge, edge]), np.concatenate([upper.row, upper.col]))),
            shape=(n_edges, self.N),
        )

    def set_edges(self, vertex, targets, weights):
        """Symmetrically set the weights between a vertex and its targets."""
        for target, weight in zip(targets, weights):
            self._W[vertex, target] = weight
            self._W[target, vertex] = weight
        self._csr = None

    def connect(self, vertices, targets, patches, params):
        """
        Connect vertices with unknown pixels to their nearest target vertices.

        The distance only uses the known entries of the connected vertex's patch
        (unknown pixels carry a negative sentinel), plus the locality term.

        Parameters:
        vertices (array-like): Vertices to connect.
        targets (array-like): Vertices with fully known patches they can connect to.
        patches (numpy.ndarray): Patch features, coordinates in the last two columns.
        params (InpaintingParams): Graph parameters.

        Returns:
        list: The vertices that received at least one edge.
        """
        targets = np.asarray(targets, dtype=np.int64)
        if targets.size == 0:
            return []

        area = params.patch_area
        target_values = patches[targets, :area]
        target_coords = patches[targets, area:] * params.rho
        k = min(params.knn, targets.size)

        connected = []
        for vertex in vertices:
            values = patches[vertex, :area]
            known = values >= 0
            diff = target_values[:, known] - values[known]
            dist2 = np.einsum("ij,ij->i", diff, diff)
            cdiff = target_coords - patches[vertex, area:] * params.rho
            dist2 += np.einsum("ij,ij->i", cdiff, cdiff)

            # Stable sort: ties go to the lowest target index.
            nearest = np.argsort(dist2, kind="stable")[:k]
            self.set_edges(vertex, targets[nearest], gaussian_weights(dist2[nearest], params.sigma))
            connected.append(int(vertex))

        return connected


def build_patch_graph(patches, shape, params):
    """
    Build the kNN patch graph restricted to the fully known patches.

    Parameters:
    patches (numpy.ndarray): (N, patch_size**2 + 2) patch features.
    shape (tuple): (height, width) of the image.
    params (InpaintingParams): Graph parameters.

    Returns:
    PatchGraph: Graph where vertices with unknown pixels are disconnected.
    """
    area = params.patch_area
    N = patches.shape[0]
    known = np.flatnonzero(np.all(patches[:, :area] >= 0, axis=1))

    if params.knn >= known.size:
        raise ConfigurationError(
            f"knn={params.knn} requires at least {params.knn + 1} fully known patches, found {known.size}."
        )

    # Euclidean distance on patch values and rho-scaled centre coordinates.
    features = np.hstack([patches[known, :area], params.rho * patches[known, area:]])
    tree = KDTree(features)
    dist, idx = tree.query(features, k=params.knn + 1)

    # Drop each point from its own neighbour list. Identical patches may push it
    # out of the first position, or out of the list, in which case the farthest goes.
    keep = idx != np.arange(known.size)[:, None]
    keep[keep.all(axis=1), -1] = False
    dist = dist[keep].reshape(known.size, params.knn)
    idx = idx[keep].reshape(known.size, params.knn)

    rows = np.repeat(known, params.knn)
    cols = known[idx.ravel()]
    weights = gaussian_weights(dist.ravel() ** 2, params.sigma)

    W = sparse.csr_matrix((weights, (rows, cols)), shape=(N, N))
    # Union of directed edges, max of reciprocal weights.
    W = W.maximum(W.T)

    logger.info(f"Patch graph: {known.size} known vertices, {sparse.triu(W, k=1).nnz} edges")
    return PatchGraph(W, shape)
