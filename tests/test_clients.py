"""Tests for the ComfyUI and background-removal HTTP clients

Run with pytest from project root:
    pytest tests/test_clients.py -v
"""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

from background_removal import BackgroundRemovalClient
from comfyui_client import ComfyUIClient
from errors import ExternalServiceError, ValidationError

WORKFLOW_PATH = str(Path(__file__).resolve().parent.parent / "workflows" / "basic_api_test.json")


def _response(status_code=200, json_data=None, content=b"", text=""):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = json_data
    response.content = content
    response.text = text
    return response


def _history(prompt_id, status_str="success"):
    return {
        prompt_id: {
            "status": {"status_str": status_str},
            "outputs": {"9": {"images": [{"filename": "out_00001_.png", "subfolder": "", "type": "output"}]}},
        }
    }


class TestComfyUIClient:
    """Tests for ComfyUIClient"""

    def test_build_workflow_patches_prompt_and_size(self):
        client = ComfyUIClient("http://comfy:8188/", WORKFLOW_PATH, width=256, height=128, model="sdxl.safetensors")
        workflow = client.build_workflow("a red barn")
        assert workflow["6"]["inputs"]["text"] == "a red barn"
        assert workflow["5"]["inputs"]["width"] == 256
        assert workflow["5"]["inputs"]["height"] == 128
        assert workflow["4"]["inputs"]["ckpt_name"] == "sdxl.safetensors"
        # The cached template is not mutated
        assert client.build_workflow("other")["5"]["inputs"]["width"] == 256
        assert client._workflow["6"]["inputs"]["text"] != "a red barn"

    def test_missing_workflow_file(self, tmp_path):
        client = ComfyUIClient("http://comfy:8188", str(tmp_path / "missing.json"))
        with pytest.raises(ValidationError):
            client.build_workflow("prompt")

    def test_generate_success(self):
        client = ComfyUIClient("http://comfy:8188", WORKFLOW_PATH, poll_interval=0)

        def fake_get(url, **kwargs):
            if url.endswith("/history/abc"):
                return _response(json_data=_history("abc"))
            assert url.endswith("/view")
            assert kwargs["params"]["filename"] == "out_00001_.png"
            return _response(content=b"png-bytes")

        with patch("comfyui_client.requests.post", return_value=_response(json_data={"prompt_id": "abc"})) as post, \
                patch("comfyui_client.requests.get", side_effect=fake_get):
            assert client.generate("a red barn") == b"png-bytes"
        submitted = post.call_args.kwargs["json"]["prompt"]
        assert submitted["6"]["inputs"]["text"] == "a red barn"

    def test_generate_polls_until_history_appears(self):
        client = ComfyUIClient("http://comfy:8188", WORKFLOW_PATH, poll_interval=0)
        responses = [_response(json_data={}), _response(status_code=500), _response(json_data=_history("abc"))]

        def fake_get(url, **kwargs):
            if "/history/" in url:
                return responses.pop(0)
            return _response(content=b"png")

        with patch("comfyui_client.requests.post", return_value=_response(json_data={"prompt_id": "abc"})), \
                patch("comfyui_client.requests.get", side_effect=fake_get):
            assert client.generate("prompt") == b"png"
        assert responses == []

    def test_workflow_error_status(self):
        client = ComfyUIClient("http://comfy:8188", WORKFLOW_PATH, poll_interval=0)
        with patch("comfyui_client.requests.post", return_value=_response(json_data={"prompt_id": "abc"})), \
                patch("comfyui_client.requests.get", return_value=_response(json_data=_history("abc", "error"))):
            with pytest.raises(ExternalServiceError):
                client.generate("prompt")

    def test_queue_rejected(self):
        client = ComfyUIClient("http://comfy:8188", WORKFLOW_PATH)
        with patch("comfyui_client.requests.post", return_value=_response(status_code=400, text="bad node")):
            with pytest.raises(ExternalServiceError) as exc_info:
                client.generate("prompt")
        assert exc_info.value.details["status_code"] == 400

    def test_timeout_maps_to_external_service_error(self):
        client = ComfyUIClient("http://comfy:8188", WORKFLOW_PATH)
        with patch("comfyui_client.requests.post", side_effect=requests.Timeout("read timed out")):
            with pytest.raises(ExternalServiceError) as exc_info:
                client.generate("prompt")
        assert exc_info.value.error_code == "EXTERNAL_SERVICE_ERROR"

    def test_deadline_exceeded(self):
        client = ComfyUIClient("http://comfy:8188", WORKFLOW_PATH, timeout=0, poll_interval=0)
        with patch("comfyui_client.requests.post", return_value=_response(json_data={"prompt_id": "abc"})), \
                patch("comfyui_client.requests.get", return_value=_response(json_data={})):
            with pytest.raises(ExternalServiceError):
                client.generate("prompt")


class TestBackgroundRemovalClient:
    """Tests for BackgroundRemovalClient"""

    def test_success(self):
        client = BackgroundRemovalClient("sk-test", url="https://removal.example.test/v2")
        with patch("background_removal.requests.post", return_value=_response(content=b"cutout")) as post:
            assert client.remove_background(b"source") == b"cutout"
        kwargs = post.call_args.kwargs
        assert kwargs["headers"] == {"API-KEY": "sk-test"}
        assert kwargs["files"]["source_image_file"][1] == b"source"
        assert kwargs["data"] == {"crop": "true"}

    def test_missing_api_key(self):
        client = BackgroundRemovalClient(None)
        with patch("background_removal.requests.post") as post:
            with pytest.raises(ExternalServiceError):
                client.remove_background(b"source")
        post.assert_not_called()

    @pytest.mark.parametrize("response", [
        _response(status_code=402, text="out of credits"),
        _response(content=b""),
    ])
    def test_error_responses(self, response):
        client = BackgroundRemovalClient("sk-test")
        with patch("background_removal.requests.post", return_value=response):
            with pytest.raises(ExternalServiceError):
                client.remove_background(b"source")

    def test_connection_error(self):
        client = BackgroundRemovalClient("sk-test")
        with patch("background_removal.requests.post", side_effect=requests.ConnectionError("refused")):
            with pytest.raises(ExternalServiceError):
                client.remove_background(b"source")
