from flask import request, jsonify
from graph_inpainting.services.inpainting_service import InpaintingService
from graph_inpainting.models.errors import ConfigurationError
from graph_inpainting.utils.image_utils import ImageUtils
from graph_inpainting import app
import traceback
import logging

# Configure logging
logging.basicConfig(level=logging.DEBUG)
logger = logging.getLogger(__name__)

@app.route('/inpaint-image', methods=['POST'])
def inpaint_image():
    """
    Endpoint to inpaint the masked pixels of an image with the patch graph method.

    Request JSON:
    {
        "image": <image_data>,
        "mask": <mask_data>,
        "params": <inpainting_parameters> (optional),
        "refine": <run_global_optimization> (optional, default is true)
    }

    Response JSON:
    {
        "image": <inpainted_image_data>,
        "refined": <globally_optimized_image_data or null>,
        "inpainted_order": <inpainted_vertices>,
        "residual": <never_inpainted_vertices>,
        "iterations": <solver_iterations or null>
    }
    """
    data = request.json

    try:
        result = InpaintingService.inpaint_image(
            image_data=data['image'],
            mask_data=data['mask'],
            params=data.get('params'),
            refine=data.get('refine', True),
        )

        refined = result['refined']
        return jsonify({
            "image": ImageUtils.encode_image(result['image']),
            "refined": ImageUtils.encode_image(refined) if refined is not None else None,
            "inpainted_order": result['inpainted_order'],
            "residual": result['residual'],
            "iterations": result['iterations'],
        })

    except (ConfigurationError, KeyError) as e:
        logger.error(f"Invalid request in inpaint_image: {str(e)}")
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        error_trace = traceback.format_exc()
        logger.error(f"Error in inpaint_image: {str(e)}\n{error_trace}")
        return jsonify({
            'error': str(e),
            'traceback': error_trace
        }), 500
