from dataclasses import dataclass, fields, asdict
from typing import Optional

from graph_inpainting.models.errors import ConfigurationError

RETRIEVE_MODES = ("copy", "average")
COMPOSE_MODES = ("overwrite", "keep-known")
PRIORS = ("tikhonov", "tv")


@dataclass
class InpaintingParams:
    """
    Parameters of the graph inpainting pipeline.

    Graph:
        patch_size: side of the square patches (odd, >= 3)
        knn: number of nearest neighbours per vertex
        sigma: bandwidth of the Gaussian distance kernel
        rho: weight of the patch centre distance (local information)

    Iterative inpainting:
        max_unknown_pixels: maximum number of unknown pixels to connect a patch
            (None means patch_size)
        priority_threshold: threshold applied to the diffused energy
        heat_scale: diffusion time of the heat kernel, relative to lmax
        cheb_order: order of the Chebyshev approximation
        retrieve: 'copy' the strongest neighbour or 'average' the neighbours
        compose: 'overwrite' the whole patch or 'keep-known' pixels
        incremental_counts: maintain unknown pixel counts at composition time
            instead of recounting every pass

    Global optimization:
        prior: 'tikhonov' or 'tv'
        optim_maxit: maximum number of Douglas-Rachford iterations
        optim_sigma: assumed noise level
        optim_tol: relative tolerance of the solver
        tv_maxit, tv_tol: inner iterations and tolerance of the TV proximal operator
    """
    patch_size: int = 5
    knn: int = 10
    sigma: float = 1.0
    rho: float = 0.001
    max_unknown_pixels: Optional[int] = None
    priority_threshold: float = 1e-3
    heat_scale: float = 50.0
    cheb_order: int = 30
    retrieve: str = "copy"
    compose: str = "overwrite"
    incremental_counts: bool = True
    prior: str = "tikhonov"
    optim_maxit: int = 100
    optim_sigma: float = 0.0
    optim_tol: float = 1e-7
    tv_maxit: int = 200
    tv_tol: float = 1e-4

    def __post_init__(self):
        if self.max_unknown_pixels is None:
            self.max_unknown_pixels = self.patch_size
        self.validate()

    @property
    def patch_area(self) -> int:
        return self.patch_size ** 2

    def validate(self) -> None:
        """Raise a ConfigurationError on the first invalid parameter."""
        if not isinstance(self.patch_size, int) or self.patch_size < 3 or self.patch_size % 2 == 0:
            raise ConfigurationError(f"Patch size must be an odd integer >= 3, got {self.patch_size}.")
        if self.knn < 1:
            raise ConfigurationError(f"knn must be >= 1, got {self.knn}.")
        if self.sigma <= 0:
            raise ConfigurationError(f"Kernel bandwidth sigma must be positive, got {self.sigma}.")
        if self.rho < 0:
            raise ConfigurationError(f"Locality weight rho must be >= 0, got {self.rho}.")
        if not 1 <= self.max_unknown_pixels <= self.patch_area:
            raise ConfigurationError(
                f"max_unknown_pixels must be in [1, {self.patch_area}], got {self.max_unknown_pixels}."
            )
        if self.priority_threshold < 0:
            raise ConfigurationError(f"Priority threshold must be >= 0, got {self.priority_threshold}.")
        if self.heat_scale <= 0:
            raise ConfigurationError(f"Heat scale must be positive, got {self.heat_scale}.")
        if self.cheb_order < 1:
            raise ConfigurationError(f"Chebyshev order must be >= 1, got {self.cheb_order}.")
        if self.retrieve not in RETRIEVE_MODES:
            raise ConfigurationError(f"Retrieve mode must be one of {RETRIEVE_MODES}, got '{self.retrieve}'.")
        if self.compose not in COMPOSE_MODES:
            raise ConfigurationError(f"Compose mode must be one of {COMPOSE_MODES}, got '{self.compose}'.")
        if self.prior not in PRIORS:
            raise ConfigurationError(f"Prior must be one of {PRIORS}, got '{self.prior}'.")
        if self.optim_maxit < 1 or self.tv_maxit < 1:
            raise ConfigurationError("Solver iteration budgets must be >= 1.")
        if self.optim_sigma < 0:
            raise ConfigurationError(f"Noise level must be >= 0, got {self.optim_sigma}.")
        if self.optim_tol <= 0 or self.tv_tol <= 0:
            raise ConfigurationError("Solver tolerances must be positive.")

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "InpaintingParams":
        """Build parameters from a JSON request body. Unknown keys are rejected."""
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown parameters: {sorted(unknown)}")
        return cls(**data)

    def to_dict(self) -> dict:
        return asdict(self)
