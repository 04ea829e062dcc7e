import base64
import cv2
import numpy as np

class ImageUtils:
    @staticmethod
    def decode_base64_image(base64_string: str, flags: int = cv2.IMREAD_COLOR) -> np.ndarray:
        """Decode base64 string to OpenCV image"""
        try:
            # Remove data URL prefix if present
            if ',' in base64_string:
                base64_string = base64_string.split(',')[1]

            # Decode base64 to bytes
            img_data = base64.b64decode(base64_string)

            # Convert to numpy array
            nparr = np.frombuffer(img_data, np.uint8)

            # Decode image
            img = cv2.imdecode(nparr, flags)

            if img is None:
                raise ValueError("Failed to decode image")

            return img

        except Exception as e:
            raise ValueError(f"Image decoding failed: {str(e)}")

    @staticmethod
    def decode_intensity(base64_string: str) -> np.ndarray:
        """Decode base64 string to a grayscale float image in [0, 1]"""
        img = ImageUtils.decode_base64_image(base64_string, cv2.IMREAD_GRAYSCALE)
        return img.astype(np.float64) / 255.0

    @staticmethod
    def decode_mask(base64_string: str) -> np.ndarray:
        """Decode base64 string to a boolean mask, True where the pixel is unknown"""
        mask = ImageUtils.decode_base64_image(base64_string, cv2.IMREAD_GRAYSCALE)
        return mask > 0

    @staticmethod
    def to_uint8(image: np.ndarray) -> np.ndarray:
        """Convert a [0, 1] intensity image to uint8, unknown (negative) pixels become 0"""
        return np.round(np.clip(image, 0.0, 1.0) * 255).astype(np.uint8)

    # expectes a numpy array, np.unit8 or float in [0, 1]
    @staticmethod
    def encode_image(image: np.ndarray, format: str = 'png') -> str:
        """Encode OpenCV image (numpy array) to base64 string"""
        try:
            if image.dtype != np.uint8:
                image = ImageUtils.to_uint8(image)

            # Encode image to bytes
            _, buffer = cv2.imencode(f'.{format}', image)
            img_data = buffer.tobytes()

            # Encode bytes to base64 string
            base64_string = base64.b64encode(img_data).decode('utf-8')

            # Optionally, prepend the data URL prefix
            data_url = f'data:image/{format};base64,' + base64_string

            return data_url

        except Exception as e:
            raise ValueError(f"Image encoding failed: {str(e)}")
