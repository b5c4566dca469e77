"""LlamaCloud client settings for the deployed workflow."""

import os

from llama_cloud import AsyncLlamaCloud

agent_name = os.getenv("LLAMA_DEPLOY_DEPLOYMENT_NAME")
base_url = os.getenv("LLAMA_CLOUD_BASE_URL")


def get_llama_cloud_client() -> AsyncLlamaCloud:
    """Cloud client used for OCR parsing and analysis storage."""
    return AsyncLlamaCloud(
        api_key=os.getenv("LLAMA_CLOUD_API_KEY"),
        base_url=base_url,
    )
