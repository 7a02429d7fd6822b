"""OpenAI-backed Q&A over a dataset preview."""

import logging
from typing import List

from openai import AsyncOpenAI, OpenAIError

from syndata.core.config import get_settings
from syndata.core.exceptions import BadGatewayException, BadRequestException

settings = get_settings()
logger = logging.getLogger(__name__)

# Rows sent to the model; the preview itself may hold more.
CONTEXT_ROWS = 50

SYSTEM_PROMPT = """You are a data analyst helping a user understand a synthetic dataset.
You only see the column names and the first rows of the file, so say so when a question
needs the full dataset. Answer concisely and do not invent columns."""


def build_context(columns: List[str], rows: List[List[str]]) -> str:
    lines = [",".join(columns)]
    lines.extend(",".join(row) for row in rows[:CONTEXT_ROWS])
    return "Columns: " + ", ".join(columns) + "\n\nFirst rows (CSV):\n" + "\n".join(lines)


class DatasetChatService:
    """Handles OpenAI API interactions for dataset chat."""

    _instance: "DatasetChatService" = None

    def __new__(cls):
        """Singleton pattern for OpenAI client."""
        if cls._instance is None:
            if not settings.OPENAI_API_KEY:
                raise BadRequestException("Dataset chat is not configured")
            cls._instance = super().__new__(cls)
            cls._instance.client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
            cls._instance.model = settings.OPENAI_MODEL
        return cls._instance

    async def ask(self, context: str, message: str, history: List[dict]) -> str:
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "system", "content": context},
        ]
        messages.extend({"role": turn["role"], "content": turn["content"]} for turn in history)
        messages.append({"role": "user", "content": message})

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=0.3,
                max_tokens=1024,
            )
        except OpenAIError as e:
            logger.error(f"Dataset chat completion failed: {e}")
            raise BadGatewayException("The AI service is unavailable right now")

        return (response.choices[0].message.content or "").strip()
