"""
HTTP client for the content-analysis service, built on HTTPX.

Provides:
- One PUT upload per attempt, streaming the file from disk
- Status- and transport-specific retry with a fixed delay
- Classification of every failure as system-level or parser-level
"""
import asyncio
import logging
import time
from pathlib import Path
from typing import Any, AsyncIterator, Optional

import aiofiles
import aiofiles.os
import httpx

from .config import AnalyzerConfig
from .exceptions import AnalyzerParserError, AnalyzerSystemError, insist
from .profiles import TypeProfile

logger = logging.getLogger(__name__)

META_ENDPOINT = "/meta"
TEXT_ENDPOINT = "/tika/text"

OCR_SKIP_HEADER = "X-Tika-OCRskipOcr"
OCR_LANGUAGE_HEADER = "X-Tika-OCRLanguage"

# Transport failures meaning the analyzer choked on this document
_PARSER_TRANSPORT_ERRORS = (httpx.ReadTimeout, httpx.WriteTimeout, httpx.RemoteProtocolError)


class AnalyzerClient:
    """
    Asynchronous client for one analyzer request/response cycle per file.

    Intent:
    Talks to the analyzer and turns every outcome into either a property
    map or a classified failure. The classification matters more than the
    retrying: parser failures are cached as facts about the content, while
    system failures are never cached because they only describe the service.

    Outcome table:
    - 200: JSON object body is the result
    - 204: empty result
    - 422: parser failure, not retried
    - read/write timeout, server dropped connection: parser failure,
      not retried (retrying will not make the document easier)
    - connection refused/reset, 500, 503, anything else: retried, since the
      service is probably restarting; system failure once retries run out

    Args:
        config: Service URL, timeout and retry settings
        transport: Optional custom transport (useful for testing)
        chunk_size: Size of chunks streamed from the file

    Example:
        >>> async with AnalyzerClient(config) as client:
        ...     props = await client.query(profile, Path("doc.pdf"), metadata_only=True)
    """

    def __init__(
        self,
        config: AnalyzerConfig,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        chunk_size: int = 65536,
    ):
        self.config = config
        self.chunk_size = chunk_size
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(config.query_timeout_seconds),
            transport=transport,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client and release resources."""
        await self._client.aclose()

    async def __aenter__(self) -> "AnalyzerClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def build_headers(self, profile: TypeProfile, metadata_only: bool) -> dict[str, str]:
        """
        Build request headers for a query.

        OCR is always skipped for metadata-only requests; the analyzer
        otherwise runs OCR even when no text was asked for. The language
        header is only sent when the profile names languages, leaving the
        analyzer's default in place otherwise.
        """
        skip_ocr = metadata_only or not profile.allow_ocr
        headers = {
            "Accept": "application/json",
            OCR_SKIP_HEADER: "true" if skip_ocr else "false",
        }
        if profile.ocr_languages:
            headers[OCR_LANGUAGE_HEADER] = profile.ocr_languages
        return headers

    def endpoint_url(self, metadata_only: bool) -> str:
        path = META_ENDPOINT if metadata_only else TEXT_ENDPOINT
        return f"{self.config.service_base_url}{path}"

    async def query(
        self, profile: TypeProfile, file_path: Path, metadata_only: bool
    ) -> dict[str, Any]:
        """
        Submit a file to the analyzer.

        Args:
            profile: Profile supplying OCR settings
            file_path: Local file to analyze
            metadata_only: True for metadata only, False for metadata plus text

        Returns:
            Property map from the analyzer (empty for 204)

        Raises:
            AnalyzerSystemError: If the file cannot be opened, or retries are
                exhausted without a usable response
            AnalyzerParserError: If the analyzer rejected or timed out on
                the document
            InvariantViolation: If a 200 response is not a JSON object
        """
        try:
            f = await aiofiles.open(file_path, "rb")
        except OSError as e:
            raise AnalyzerSystemError(
                f"Failed to open '{file_path}' for read: {e}", metadata_only
            ) from e

        try:
            try:
                size = (await aiofiles.os.stat(file_path)).st_size
            except OSError as e:
                raise AnalyzerSystemError(
                    f"Failed to get size of '{file_path}': {e}", metadata_only
                ) from e
            return await self._query_with_retry(f, size, profile, file_path, metadata_only)
        finally:
            await f.close()

    async def _query_with_retry(
        self,
        f: Any,
        size: int,
        profile: TypeProfile,
        file_path: Path,
        metadata_only: bool,
    ) -> dict[str, Any]:
        url = self.endpoint_url(metadata_only)
        headers = self.build_headers(profile, metadata_only)
        headers["Content-Length"] = str(size)
        max_attempts = 1 + self.config.query_retry_count

        for attempt in range(1, max_attempts + 1):
            started = time.monotonic()
            try:
                response = await self._client.put(
                    url, content=self._stream(f), headers=headers
                )
            except _PARSER_TRANSPORT_ERRORS as e:
                logger.warning("Analyzer gave up on %s: %s: %s", file_path, type(e).__name__, e)
                raise AnalyzerParserError(
                    f"Analyzer failed to answer for '{file_path}': {type(e).__name__}: {e}",
                    metadata_only,
                ) from e
            except httpx.TransportError as e:
                logger.warning(
                    "Transport error while querying analyzer for %s: %s: %s",
                    file_path, type(e).__name__, e,
                )
            else:
                logger.debug(
                    "Analyzer transaction for %s took %.3fs",
                    file_path, time.monotonic() - started,
                )
                status = response.status_code
                if status == 200:
                    return self._parse_body(response, file_path)
                if status == 204:
                    return {}
                if status == 422:
                    logger.warning("Analyzer could not process %s (422)", file_path)
                    raise AnalyzerParserError(
                        f"Analyzer could not process '{file_path}' (HTTP 422)", metadata_only
                    )
                logger.warning("Analyzer responded with status %d for %s", status, file_path)

            if attempt < max_attempts:
                logger.warning(
                    "Retrying analyzer query for %s (attempt %d/%d) in %.1fs",
                    file_path, attempt + 1, max_attempts, self.config.query_retry_delay_seconds,
                )
                await asyncio.sleep(self.config.query_retry_delay_seconds)

        raise AnalyzerSystemError(
            f"Analyzer query exhausted retries for '{file_path}' after {max_attempts} attempts",
            metadata_only,
        )

    async def _stream(self, f: Any) -> AsyncIterator[bytes]:
        await f.seek(0)
        while chunk := await f.read(self.chunk_size):
            yield chunk

    @staticmethod
    def _parse_body(response: httpx.Response, file_path: Path) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            body = None
        insist(isinstance(body, dict), f"analyzer response for '{file_path}' is a JSON object")
        return body
