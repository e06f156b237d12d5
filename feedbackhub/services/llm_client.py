import json
import logging
from typing import Dict, Any

from openai import OpenAI, OpenAIError
from pydantic import ValidationError as SchemaError

from feedbackhub.config import settings
from feedbackhub.schemas.analysis_schemas import AIClassification
from feedbackhub.services.errors import ClassificationError

logger = logging.getLogger(__name__)


CLASSIFIER_PROMPT = (
    "You classify product feedback left by website visitors. "
    "Return ONLY valid JSON (no markdown). Schema:\n"
    "{\n"
    '  "sentiment": "POSITIVE" | "NEGATIVE" | "NEUTRAL",\n'
    '  "category": "BUG" | "FEATURE" | "REVIEW",\n'
    '  "sentimentConfidence": float (0-1),\n'
    '  "categoryConfidence": float (0-1),\n'
    '  "reasoning": string (one sentence)\n'
    "}\n"
    "BUG: something is broken or behaves incorrectly. "
    "FEATURE: a request for new or improved functionality. "
    "REVIEW: general opinion or praise/complaint without a concrete bug or request."
)


class LLMClient:
    """
    Wrapper around the OpenAI client for feedback classification.
    """

    def __init__(self, model: str | None = None, timeout: float | None = None):
        self.timeout = timeout or settings.openai_timeout
        self.client = OpenAI(api_key=settings.openai_api_key, timeout=self.timeout, max_retries=0)
        self.model = model or settings.openai_model

    def classify_feedback(self, text: str) -> Dict[str, Any]:
        """
        Ask the model for category and sentiment.

        Raises ClassificationError on provider errors, timeouts and
        responses that do not match the schema.
        """
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                response_format={"type": "json_object"},
                max_tokens=settings.openai_max_tokens,
                messages=[
                    {"role": "system", "content": CLASSIFIER_PROMPT},
                    {
                        "role": "user",
                        "content": f"Analyze this feedback:\n\n{text}",
                    },
                ],
            )
            content = response.choices[0].message.content
            parsed = AIClassification.model_validate(json.loads(content or ""))

        except OpenAIError as e:
            logger.warning(f"OpenAI API error during classification: {e}")
            raise ClassificationError(f"provider error: {e}") from e
        except (json.JSONDecodeError, SchemaError) as e:
            logger.warning(f"Malformed classification response: {e}")
            raise ClassificationError(f"malformed response: {e}") from e

        return parsed.model_dump(by_alias=True)
