import logging

from graph_inpainting.utils.image_utils import ImageUtils
from graph_inpainting.models.graph_inpainter import GraphInpainter
from graph_inpainting.models.params import InpaintingParams
from graph_inpainting.models.errors import ConfigurationError

logger = logging.getLogger(__name__)

class InpaintingService:
    @staticmethod
    def inpaint_image(image_data, mask_data, params=None, refine=True):
        """
        Inpaint image using the patch graph method

        Args:
            image_data: Base64 encoded image to inpaint (converted to grayscale)
            mask_data: Base64 encoded mask where non-zero pixels are to be inpainted
            params: Dictionary of InpaintingParams fields (optional)
            refine: Whether to run the global optimization stage

        Returns:
            dict with the inpainted image, the refined image (or None), the
            inpainted vertices in order, the never inpainted vertices and the
            number of solver iterations
        """
        params = InpaintingParams.from_dict(params)

        # Decode base64 images
        try:
            image = ImageUtils.decode_intensity(image_data)
            mask = ImageUtils.decode_mask(mask_data)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
        if mask.shape != image.shape:
            raise ConfigurationError(f"Mask shape {mask.shape} does not match image shape {image.shape}")

        try:
            inpainter = GraphInpainter(image, mask, params)
            inpainter.run(refine=refine)
        except Exception as e:
            logger.error(f"Error in graph inpainting: {str(e)}")
            raise

        return {
            "image": inpainter.image,
            "refined": inpainter.refined,
            "inpainted_order": inpainter.inpainted_order,
            "residual": inpainter.residual,
            "iterations": inpainter.refinement.iterations if inpainter.refinement else None,
        }
