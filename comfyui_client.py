import copy
import json
import logging
import time
from typing import Any, Dict, Optional, Sequence

import requests

from errors import ExternalServiceError, ValidationError

logger = logging.getLogger("ComfyUIClient")

DEFAULT_MAPPING = {
    "prompt": ("6", "text"),
    "width": ("5", "width"),
    "height": ("5", "height"),
    "model": ("4", "ckpt_name")
}

IMAGE_OUTPUT_KEYS = ("images", "image")


class ComfyUIClient:
    """Image generation service backed by a ComfyUI server.

    generate(prompt) submits the API-format workflow with the prompt
    patched in, polls /history until the run finishes and downloads the
    first image from /view.
    """

    def __init__(
        self,
        base_url: str,
        workflow_path: str,
        timeout: float = 120,
        poll_interval: float = 1.0,
        width: Optional[int] = None,
        height: Optional[int] = None,
        model: Optional[str] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.workflow_path = workflow_path
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.width = width
        self.height = height
        self.model = model
        self._workflow: Optional[Dict[str, Any]] = None

    def _load_workflow(self) -> Dict[str, Any]:
        if self._workflow is None:
            try:
                with open(self.workflow_path, "r", encoding="utf-8") as f:
                    self._workflow = json.load(f)
            except FileNotFoundError:
                raise ValidationError(f"Workflow file '{self.workflow_path}' not found")
            except json.JSONDecodeError as e:
                raise ValidationError(f"Workflow file '{self.workflow_path}' is not valid JSON: {e}")
        return copy.deepcopy(self._workflow)

    def build_workflow(self, prompt: str) -> Dict[str, Any]:
        """Patch prompt (and configured size/model) into a copy of the workflow"""
        workflow = self._load_workflow()
        params: Dict[str, Any] = {"prompt": prompt}
        if self.width:
            params["width"] = self.width
        if self.height:
            params["height"] = self.height
        if self.model:
            params["model"] = self.model

        for param_key, value in params.items():
            node_id, input_key = DEFAULT_MAPPING[param_key]
            if node_id not in workflow:
                raise ValidationError(f"Node {node_id} not found in workflow {self.workflow_path}")
            workflow[node_id]["inputs"][input_key] = value
        return workflow

    def generate(self, prompt: str) -> bytes:
        """Run one generation and return the image bytes.

        Raises:
            ExternalServiceError: If ComfyUI errors, times out or returns no image
        """
        workflow = self.build_workflow(prompt)
        deadline = time.monotonic() + self.timeout
        try:
            prompt_id = self._queue_workflow(workflow)
            outputs = self._wait_for_prompt(prompt_id, deadline)
            asset = self._extract_first_asset(outputs, IMAGE_OUTPUT_KEYS)
            return self._download(asset, deadline)
        except requests.Timeout as e:
            raise ExternalServiceError(f"ComfyUI request timed out: {e}", {"timeout": self.timeout})
        except requests.RequestException as e:
            raise ExternalServiceError(f"ComfyUI API error: {e}")

    def _remaining(self, deadline: float) -> float:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise ExternalServiceError(
                f"Generation did not complete within {self.timeout} seconds", {"timeout": self.timeout}
            )
        return remaining

    def _queue_workflow(self, workflow: Dict[str, Any]) -> str:
        logger.info("Submitting workflow to ComfyUI...")
        response = requests.post(f"{self.base_url}/prompt", json={"prompt": workflow}, timeout=self.timeout)
        if response.status_code != 200:
            raise ExternalServiceError(
                f"Failed to queue workflow: {response.status_code} - {response.text}",
                {"status_code": response.status_code}
            )
        prompt_id = response.json()["prompt_id"]
        logger.info(f"Queued workflow with prompt_id: {prompt_id}")
        return prompt_id

    def _wait_for_prompt(self, prompt_id: str, deadline: float) -> Dict[str, Any]:
        attempt = 0
        while True:
            remaining = self._remaining(deadline)
            attempt += 1
            response = requests.get(f"{self.base_url}/history/{prompt_id}", timeout=remaining)
            if response.status_code != 200:
                logger.warning(f"History endpoint returned {response.status_code} on attempt {attempt}")
            else:
                history = response.json()
                if history.get(prompt_id):
                    entry = history[prompt_id]
                    status = entry.get("status", {})
                    if status.get("status_str") == "error":
                        raise ExternalServiceError(f"Workflow {prompt_id} failed in ComfyUI", {"prompt_id": prompt_id})
                    return entry["outputs"]
            time.sleep(min(self.poll_interval, max(deadline - time.monotonic(), 0)))

    def _extract_first_asset(self, outputs: Dict[str, Any], preferred_output_keys: Sequence[str]) -> Dict[str, Any]:
        for node_output in outputs.values():
            for key in preferred_output_keys:
                assets = node_output.get(key)
                if assets:
                    return assets[0]
        raise ExternalServiceError(f"No outputs matched preferred keys: {list(preferred_output_keys)}")

    def _download(self, asset: Dict[str, Any], deadline: float) -> bytes:
        params = {
            "filename": asset["filename"],
            "subfolder": asset.get("subfolder", ""),
            "type": asset.get("type", "output"),
        }
        response = requests.get(f"{self.base_url}/view", params=params, timeout=self._remaining(deadline))
        if response.status_code != 200:
            raise ExternalServiceError(
                f"Failed to download {asset['filename']}: {response.status_code}",
                {"status_code": response.status_code}
            )
        logger.info(f"Downloaded generated image {asset['filename']} ({len(response.content)} bytes)")
        return response.content
