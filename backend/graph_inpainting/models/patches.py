import numpy as np

from graph_inpainting.models.errors import ConfigurationError

# Value of an unknown pixel. A patch with 4 unknown pixels sums to -4e3.
UNKNOWN_PIXEL = -1e3


def check_patch_size(patch_size):
  if not isinstance(patch_size, (int, np.integer)) or patch_size < 3 or patch_size % 2 == 0:
    raise ConfigurationError(f"Patch size must be an odd integer >= 3, got {patch_size}.")


def patch_offsets(patch_size):
  """
  Row and column offsets of the pixels of a patch, relative to its centre.

  Parameters:
  patch_size (int): Side of the square patch.

  Returns:
  tuple: (dy, dx) arrays of length patch_size**2, in row-major order.
  """
  check_patch_size(patch_size)
  half = patch_size // 2
  dy, dx = np.mgrid[-half:half + 1, -half:half + 1]
  return dy.ravel(), dx.ravel()


def patch_footprint(shape, patch_size):
  """
  Pixel indices covered by every patch of an image.

  Borders are handled by clamped indexing: a position falling outside the image
  is replaced by the closest border pixel, so every patch has exactly
  patch_size**2 entries and border pixels may appear several times.

  Parameters:
  shape (tuple): (height, width) of the image.
  patch_size (int): Side of the square patch.

  Returns:
  numpy.ndarray: (height*width, patch_size**2) array of row-major pixel indices.
  """
  height, width = shape
  dy, dx = patch_offsets(patch_size)
  rows, cols = np.divmod(np.arange(height * width), width)
  prow = np.clip(rows[:, None] + dy[None, :], 0, height - 1)
  pcol = np.clip(cols[:, None] + dx[None, :], 0, width - 1)
  return prow * width + pcol


def observe(image, omega):
  """
  Hide the pixels of an image under a mask.

  Parameters:
  image (numpy.ndarray): Ground truth intensities in [0, 1].
  omega (numpy.ndarray): Boolean mask, True where the pixel is unknown.

  Returns:
  numpy.ndarray: Observed image, UNKNOWN_PIXEL where omega is set.
  """
  image = np.asarray(image, dtype=np.float64)
  omega = np.asarray(omega, dtype=bool)
  if image.ndim != 2:
    raise ConfigurationError(f"Expected a 2-D grayscale image, got shape {image.shape}.")
  if omega.shape != image.shape:
    raise ConfigurationError(f"Mask shape {omega.shape} does not match image shape {image.shape}.")
  observed = image.copy()
  observed[omega] = UNKNOWN_PIXEL
  return observed


def extract_patches(observed, patch_size):
  """
  Turn an observed image into patch feature vectors.

  Parameters:
  observed (numpy.ndarray): 2-D image, negative values mark unknown pixels.
  patch_size (int): Side of the square patch (odd, >= 3).

  Returns:
  tuple: (patches, pixels, footprint)
    patches: (N, patch_size**2 + 2) features, the last two columns are the
      (x, y) coordinates of the patch centre.
    pixels: (N,) pixel values, UNKNOWN_PIXEL for unknown pixels.
    footprint: (N, patch_size**2) pixel indices covered by each patch.
  """
  check_patch_size(patch_size)
  observed = np.asarray(observed, dtype=np.float64)
  if observed.ndim != 2:
    raise ConfigurationError(f"Expected a 2-D grayscale image, got shape {observed.shape}.")

  height, width = observed.shape
  pixels = observed.ravel().copy()
  pixels[pixels < 0] = UNKNOWN_PIXEL

  footprint = patch_footprint(observed.shape, patch_size)
  rows, cols = np.divmod(np.arange(height * width), width)

  patches = np.empty((height * width, patch_size ** 2 + 2), dtype=np.float64)
  patches[:, :-2] = pixels[footprint]
  patches[:, -2] = cols
  patches[:, -1] = rows

  return patches, pixels, footprint


def unknown_counts(patches, patch_size):
  """Number of unknown pixels in every patch."""
  return np.count_nonzero(patches[:, :patch_size ** 2] < 0, axis=1)
