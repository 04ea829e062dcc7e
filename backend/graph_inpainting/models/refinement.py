import logging
from dataclasses import dataclass

import numpy as np
from scipy import sparse
from scipy.sparse.linalg import factorized
from pyunlocbox import functions, solvers

from graph_inpainting.models.params import InpaintingParams
from graph_inpainting.models.patch_graph import PatchGraph

logger = logging.getLogger(__name__)


@dataclass
class RefinementResult:
    sol: np.ndarray
    iterations: int
    crit: str
    residual: float
    prior: float


class GlobalRefiner:
    """
    Global stage by convex optimization over the patch graph:

        minimize prior(x)  subject to  ||M x - y||_2 <= epsilon

    where M selects the observed pixels, y holds their values and
    epsilon = noise level * sqrt(number of observed pixels).

    The refiner supplies the proximal operators of both terms and hands them to
    the Douglas-Rachford solver of pyunlocbox.
    """

    def __init__(self, graph: PatchGraph, observed: np.ndarray, params: InpaintingParams) -> None:
        self.graph = graph
        self.params = params

        observed = np.asarray(observed, dtype=np.float64).ravel()
        self.M = observed >= 0
        self.y = np.where(self.M, observed, 0.0)
        self.epsilon = params.optim_sigma * np.sqrt(np.count_nonzero(self.M))

        self.L = graph.laplacian()
        self._tik_solvers = {}

        if params.prior == "tv":
            # Edge oriented representation and spectrum bound, built once.
            self.D = graph.differential_operator()
            self.lmax = graph.estimate_lmax()
        else:
            self.D = None
            self.lmax = None

    # Data term.

    def project_data(self, x, step=1.0):
        """
        Projection onto the L2 ball {x : ||M x - y||_2 <= epsilon}. Unobserved
        entries are left untouched. The step is irrelevant for a projection.
        """
        sol = np.array(x, dtype=np.float64, copy=True)
        residual = sol[self.M] - self.y[self.M]
        norm = np.linalg.norm(residual)
        if norm > self.epsilon:
            scale = self.epsilon / norm
            sol[self.M] = self.y[self.M] + scale * residual
        return sol

    def data_residual(self, x) -> float:
        return float(np.linalg.norm(np.asarray(x)[self.M] - self.y[self.M]))

    # Prior term.

    def prior_eval(self, x) -> float:
        x = np.asarray(x, dtype=np.float64)
        if self.params.prior == "tikhonov":
            return float(x @ (self.L @ x))
        return float(np.abs(self.D @ x).sum())

    def prior_prox(self, x, step):
        x = np.asarray(x, dtype=np.float64)
        if step <= 0:
            return x.copy()
        if self.params.prior == "tikhonov":
            return self._prox_tikhonov(x, step)
        return self._prox_tv(x, step)

    def _prox_tikhonov(self, x, step):
        """argmin_z 1/2 ||z - x||^2 + step * z^T L z, i.e. (I + 2 step L) z = x."""
        solve = self._tik_solvers.get(step)
        if solve is None:
            A = (sparse.identity(self.graph.N, format="csc") + 2.0 * step * self.L).tocsc()
            solve = factorized(A)
            self._tik_solvers[step] = solve
        return solve(x)

    def _prox_tv(self, x, step):
        """
        argmin_z 1/2 ||z - x||^2 + step * ||D z||_1, by FISTA on the dual problem.
        The dual variable lives on the edges and is bounded by 1.
        """
        if self.D.shape[0] == 0 or self.lmax <= 0:
            return x.copy()

        u = np.zeros(self.D.shape[0])
        r = u.copy()
        t = 1.0
        sol = x.copy()
        for _ in range(self.params.tv_maxit):
            z = x - step * (self.D.T @ r)
            u_new = np.clip(r + (self.D @ z) / (step * self.lmax), -1.0, 1.0)
            t_new = (1.0 + np.sqrt(1.0 + 4.0 * t ** 2)) / 2.0
            r = u_new + (t - 1.0) / t_new * (u_new - u)
            u, t = u_new, t_new

            sol_new = x - step * (self.D.T @ u)
            change = np.linalg.norm(sol_new - sol)
            scale = max(np.linalg.norm(sol_new), np.finfo(np.float64).eps)
            sol = sol_new
            if change / scale < self.params.tv_tol:
                break
        return sol

    def solve(self, x0=None, verbosity="NONE") -> RefinementResult:
        """
        Solve the problem with Douglas-Rachford splitting.

        Parameters:
        x0 (numpy.ndarray): Starting point (default: the observed values y).
        verbosity (str): pyunlocbox verbosity level.

        Returns:
        RefinementResult: Last iterate, iterations used, stopping criterion, data
        residual and prior value. Reaching maxit is not an error.
        """
        fprior = functions.func()
        fprior._eval = self.prior_eval
        fprior._prox = self.prior_prox

        fdata = functions.func()
        # The constraint is always satisfied after projection.
        fdata._eval = lambda x: np.finfo(np.float64).eps
        fdata._prox = self.project_data

        x0 = self.y.copy() if x0 is None else np.array(x0, dtype=np.float64, copy=True).ravel()
        solver = solvers.douglas_rachford(step=1.0)
        ret = solvers.solve([fprior, fdata], x0, solver,
                            rtol=self.params.optim_tol, maxit=self.params.optim_maxit,
                            verbosity=verbosity)

        sol = np.asarray(ret["sol"], dtype=np.float64)
        result = RefinementResult(
            sol=sol,
            iterations=int(ret["niter"]),
            crit=str(ret["crit"]),
            residual=self.data_residual(sol),
            prior=self.prior_eval(sol),
        )
        if result.crit == "MAXIT":
            logger.info(f"Global optimization reached maxit={self.params.optim_maxit} "
                        f"(residual {result.residual:.3e}), returning the last iterate")
        return result
