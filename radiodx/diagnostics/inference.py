"""
Client for the vision-capable chat completions endpoint.

One call per batch: a system instruction, then a user message made of one
text part and one inline image part per image. The reply text is returned
verbatim; reading it as a diagnostic payload is the aggregator's job.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx
from pydantic import BaseModel

from radiodx.core.config import settings
from radiodx.diagnostics.models import UploadedImage

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = """You are an expert radiologist AI assistant specializing in medical image analysis and diagnostic report generation.

Your role is to:
1. Analyze medical images with precision and clinical expertise
2. Identify abnormalities, pathologies, and significant findings
3. Provide detailed descriptions of anatomical structures and conditions
4. Assign confidence levels to your findings
5. Generate comprehensive diagnostic reports in structured format

For each batch of images, provide:
- SUMMARY: Overall assessment of the image set
- FINDINGS: Detailed list of abnormalities and significant observations
- RECOMMENDATIONS: Clinical recommendations based on findings
- CONFIDENCE: Overall confidence level (0-100%)

Format your response as structured JSON with the following schema:
{
  "summary": "Brief overall assessment",
  "findings": [
    {
      "description": "Detailed finding description",
      "severity": "low|moderate|high|critical",
      "location": "Anatomical location",
      "confidence": 85
    }
  ],
  "recommendations": ["Clinical recommendation 1", "Clinical recommendation 2"],
  "confidence": 92
}

Important guidelines:
- Be thorough but concise in your analysis
- Use proper medical terminology
- Indicate uncertainty when findings are ambiguous
- Consider differential diagnoses when appropriate
- Always recommend further evaluation when necessary"""


def get_system_prompt() -> str:
    """Default instruction, exposed so users can start a custom prompt from it."""
    return DEFAULT_SYSTEM_PROMPT


class InferenceResult(BaseModel):
    """Outcome of one inference call: reply text on success, a reason otherwise"""
    success: bool
    content: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, content: str) -> "InferenceResult":
        return cls(success=True, content=content)

    @classmethod
    def failed(cls, error: str) -> "InferenceResult":
        return cls(success=False, error=error)


def batch_instruction(batch_number: int, total_batches: int) -> str:
    return (
        f"Analyze this batch of medical images (Batch {batch_number}/{total_batches}). "
        "Provide a comprehensive diagnostic assessment following the structured "
        "format specified in your instructions."
    )


def image_part(image: UploadedImage) -> Dict[str, Any]:
    return {
        "type": "image_url",
        "image_url": {"url": f"data:{image.media_type};base64,{image.data}"},
    }


def extract_message_content(data: Any) -> Optional[str]:
    """Pull choices[0].message.content out of a response body, or None."""
    if not isinstance(data, dict):
        return None
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    message = first.get("message")
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    return content if isinstance(content, str) else None


class InferenceClient:
    """Sends one batch at a time to the configured inference endpoint."""

    def __init__(
        self,
        endpoint: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        customer_id: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint or settings.INFERENCE_API_URL
        self.api_key = api_key if api_key is not None else settings.INFERENCE_API_KEY
        self.model = model or settings.INFERENCE_MODEL
        self.timeout = timeout if timeout is not None else settings.INFERENCE_TIMEOUT_SECONDS
        self.max_tokens = max_tokens or settings.INFERENCE_MAX_TOKENS
        self.temperature = temperature if temperature is not None else settings.INFERENCE_TEMPERATURE
        self.customer_id = customer_id if customer_id is not None else settings.INFERENCE_CUSTOMER_ID
        self._transport = transport

    def build_request(
        self,
        images: Sequence[UploadedImage],
        batch_number: int,
        total_batches: int,
        custom_prompt: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Request body for one batch."""
        content: List[Dict[str, Any]] = [
            {"type": "text", "text": batch_instruction(batch_number, total_batches)}
        ]
        content.extend(image_part(image) for image in images)

        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": custom_prompt or DEFAULT_SYSTEM_PROMPT},
                {"role": "user", "content": content},
            ],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        if self.customer_id:
            headers["CustomerId"] = self.customer_id
        return headers

    async def process_batch(
        self,
        images: Sequence[UploadedImage],
        batch_number: int,
        total_batches: int,
        custom_prompt: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> InferenceResult:
        """
        Submit one batch and return the raw reply text.

        Never raises for transport problems: timeouts, non-2xx responses and
        bodies without choices[0].message.content come back as failed results.
        No retries.
        """
        limit = self.timeout if timeout is None else min(timeout, self.timeout)
        body = self.build_request(images, batch_number, total_batches, custom_prompt)

        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(limit),
                transport=self._transport,
            ) as client:
                # httpx timeouts are per phase; wait_for bounds the whole call
                response = await asyncio.wait_for(
                    client.post(self.endpoint, json=body, headers=self._headers()),
                    timeout=limit,
                )
        except (httpx.TimeoutException, asyncio.TimeoutError):
            logger.error(f"Batch {batch_number}/{total_batches}: inference call timed out after {limit:g}s")
            return InferenceResult.failed(f"Inference request timed out after {limit:g} seconds")
        except httpx.HTTPError as e:
            logger.error(f"Batch {batch_number}/{total_batches}: inference transport error: {e}")
            return InferenceResult.failed(f"Inference request failed: {e}")

        if not response.is_success:
            logger.error(f"Batch {batch_number}/{total_batches}: inference API returned {response.status_code}")
            return InferenceResult.failed(f"API request failed: {response.status_code} - {response.text}")

        try:
            data = response.json()
        except ValueError:
            return InferenceResult.failed("Invalid API response structure: body is not JSON")

        content = extract_message_content(data)
        if content is None:
            return InferenceResult.failed("Invalid API response structure")

        logger.info(f"Batch {batch_number}/{total_batches}: received {len(content)} characters from inference API")
        return InferenceResult.ok(content)
