"""Gemini-backed extraction of raw document data."""

import logging
import time
from pathlib import Path
from typing import Any, Optional

import aiohttp
from google import genai
from google.genai import types

from docintake.config import Settings
from docintake.core.catalog import CatalogProvider, SchemaCatalog
from docintake.core.exceptions import APIError
from docintake.core.json_utils import parse_extraction_text
from docintake.core.security import MIME_EXTENSIONS
from docintake.extraction.rate_limit import RateLimitedExecutor, RetryError
from docintake.prompts import build_extraction_prompt, build_user_prompt

logger = logging.getLogger(__name__)


def create_genai_client(settings: Settings) -> "genai.Client":
    """Create a genai client with aiohttp transport."""
    http_options = types.HttpOptions(
        async_client_args={
            "connector": aiohttp.TCPConnector(limit=50, limit_per_host=10),
        }
    )

    if settings.use_vertex_ai:
        logger.info("Using Vertex AI with Application Default Credentials + aiohttp transport")
    else:
        logger.info("Using regular Gemini API with API key + aiohttp transport")
    return genai.Client(**settings.api_client_kwargs, http_options=http_options)


class GeminiExtractor:
    """Sends a document to the extraction model and returns its raw JSON.

    The returned data is untrusted; it goes through the normalizer before use.
    """

    def __init__(
        self,
        settings: Settings,
        catalog_provider: CatalogProvider,
        client: Optional["genai.Client"] = None,
        executor: Optional[RateLimitedExecutor] = None
    ):
        self.settings = settings
        self.catalog_provider = catalog_provider
        self._client = client
        self.executor = executor or RateLimitedExecutor.from_settings(settings)

    @property
    def client(self) -> "genai.Client":
        if self._client is None:
            self._client = create_genai_client(self.settings)
        return self._client

    async def extract_text(
        self,
        document_bytes: bytes,
        mime_type: str,
        doctype_hint: Optional[str] = None,
        catalog: Optional[SchemaCatalog] = None
    ) -> str:
        """Run the extraction call and return the model's raw text.

        The prompt is built from `catalog`, or from a fresh snapshot when omitted.

        Raises:
            APIError: If the call still fails after retries
        """
        if catalog is None:
            catalog = self.catalog_provider.snapshot()
        model = self.settings.extraction_model

        contents = [
            types.Part.from_bytes(
                data=document_bytes,
                mime_type=mime_type,
            ),
            build_user_prompt(doctype_hint),
        ]
        config = types.GenerateContentConfig(
            system_instruction=build_extraction_prompt(catalog, doctype_hint)
        )

        async def call_model() -> str:
            response = await self.client.aio.models.generate_content(
                model=model,
                contents=contents,
                config=config
            )
            return response.text or ""

        operation_name = f"extract[{doctype_hint or 'auto'}]"
        start_time = time.time()
        try:
            text = await self.executor.execute(call_model, operation_name=operation_name)
        except RetryError as e:
            raise APIError(e.last_exception, model, e.attempts, doctype_hint) from e

        logger.info(
            f"[EXTRACT] {operation_name} - Response received in {time.time() - start_time:.1f}s "
            f"({len(document_bytes) / 1024:.0f}KB {mime_type})"
        )

        if self.settings.debug_responses:
            self._save_response(text, doctype_hint, mime_type)
        return text

    async def extract(
        self,
        document_bytes: bytes,
        mime_type: str,
        doctype_hint: Optional[str] = None,
        catalog: Optional[SchemaCatalog] = None
    ) -> dict[str, Any]:
        """Extract and parse the model output into a JSON object.

        Raises:
            APIError: If the call still fails after retries
            ExtractionParseError: If the response holds no JSON object
        """
        text = await self.extract_text(document_bytes, mime_type, doctype_hint, catalog)
        return parse_extraction_text(text)

    def _save_response(self, text: str, doctype_hint: Optional[str], mime_type: str) -> Optional[Path]:
        folder = Path(self.settings.json_responses_directory) / (doctype_hint or "auto")
        extension = MIME_EXTENSIONS.get(mime_type, "bin")
        path = folder / f"{time.strftime('%Y%m%d-%H%M%S')}_{time.time_ns() % 1_000_000:06d}_{extension}.txt"
        try:
            folder.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                f.write(text)
        except OSError as e:
            logger.warning(f"[EXTRACT] Unable to save raw response to {path}: {e}")
            return None
        return path


__all__ = ["GeminiExtractor", "create_genai_client"]
