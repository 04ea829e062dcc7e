import numpy as np
import pytest

from graph_inpainting import app
from graph_inpainting.utils.image_utils import ImageUtils


@pytest.fixture
def client():
    app.config['TESTING'] = True
    with app.test_client() as client:
        yield client


@pytest.fixture
def payload():
    image = np.tile(np.linspace(0, 255, 12), (12, 1)).astype(np.uint8)
    mask = np.zeros((12, 12), dtype=np.uint8)
    mask[5:7, 5:7] = 255
    return {
        "image": ImageUtils.encode_image(image),
        "mask": ImageUtils.encode_image(mask),
        "params": {"patch_size": 3, "knn": 4, "optim_maxit": 20},
    }


def test_inpaint_image(client, payload):
    response = client.post('/inpaint-image', json=payload)
    assert response.status_code == 200

    body = response.get_json()
    assert body["residual"] == []
    assert len(body["inpainted_order"]) == len(set(body["inpainted_order"]))
    assert 1 <= body["iterations"] <= 20

    image = ImageUtils.decode_intensity(body["image"])
    refined = ImageUtils.decode_intensity(body["refined"])
    assert image.shape == (12, 12)
    assert refined.shape == (12, 12)


def test_inpaint_image_without_refinement(client, payload):
    payload["refine"] = False
    body = client.post('/inpaint-image', json=payload).get_json()
    assert body["refined"] is None
    assert body["iterations"] is None


@pytest.mark.parametrize("params", [{"patch_size": 4}, {"knn": 4, "colour": True}])
def test_invalid_parameters(client, payload, params):
    payload["params"] = params
    response = client.post('/inpaint-image', json=payload)
    assert response.status_code == 400
    assert "error" in response.get_json()


def test_missing_mask(client, payload):
    del payload["mask"]
    response = client.post('/inpaint-image', json=payload)
    assert response.status_code == 400
