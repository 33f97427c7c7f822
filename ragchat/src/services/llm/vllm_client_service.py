"""Engine connecting to a vLLM server running the OpenAI-compatible API."""

import logging
import time
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ragchat.src.services.llm.llm_service import OpenAICompletionEngine

logger = logging.getLogger(__name__)


class VLLMCompletionEngine(OpenAICompletionEngine):
    """Completion engine for a running vLLM server.

    Completions go through the server's OpenAI-compatible endpoint; the
    constructor only waits until the server reports healthy.
    """

    def __init__(
        self,
        api_base_url: str,
        model_name: str,
        temperature: float = 0.0,
        default_max_tokens: Optional[int] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        max_wait_time: float = 300.0,
    ):
        """
        Initialize the vLLM engine.

        Args:
            api_base_url: Base URL of the vLLM server (e.g., "http://localhost:8001")
            model_name: Model served by the vLLM server
            temperature: Sampling temperature
            default_max_tokens: Used when a call does not pass max_tokens
            max_retries: Maximum number of retries for failed health requests
            retry_delay: Delay between health checks in seconds
            max_wait_time: Maximum seconds to wait for the server to become ready
        """
        self.api_base_url = api_base_url.rstrip("/")
        self.retry_delay = retry_delay
        self.max_wait_time = max_wait_time

        # Configure session with retry logic for the health check
        self.session = requests.Session()
        retry_strategy = Retry(
            total=max_retries,
            backoff_factor=retry_delay,
            status_forcelist=[500, 502, 503, 504],
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

        self._wait_for_server()

        # vLLM ignores the key but the SDK requires one
        super().__init__(
            model_name=model_name,
            api_key="EMPTY",
            base_url=f"{self.api_base_url}/v1",
            temperature=temperature,
            default_max_tokens=default_max_tokens,
        )

    def _wait_for_server(self) -> None:
        """Wait for the vLLM server to be ready.

        Raises:
            ConnectionError: If the server is not healthy within max_wait_time
        """
        logger.info(f"Waiting for vLLM server at {self.api_base_url}...")

        start_time = time.time()
        while time.time() - start_time < self.max_wait_time:
            try:
                response = self.session.get(f"{self.api_base_url}/health", timeout=10)
                if response.status_code == 200:
                    logger.info("Successfully connected to vLLM server")
                    return
                logger.warning(f"Server not ready (status {response.status_code})")
            except requests.exceptions.RequestException as e:
                logger.warning(f"Connection attempt failed: {str(e)}")

            wait_time = min(self.retry_delay * 2, 30)
            logger.info(f"Waiting {wait_time} seconds before next attempt...")
            time.sleep(wait_time)

        raise ConnectionError(
            f"Could not connect to vLLM server at {self.api_base_url} "
            f"after waiting {self.max_wait_time} seconds"
        )
