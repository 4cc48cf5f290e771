"""JSON-object chat adapter over LangChain chat models."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage

from .config import AnalysisConfig
from .errors import AnalysisFailed

logger = logging.getLogger(__name__)


def build_openai_chat_model(analysis_config: AnalysisConfig) -> BaseChatModel:
    from langchain_openai import ChatOpenAI

    # LangChain's built-in retry logic through max_retries
    return ChatOpenAI(
        model=analysis_config.model,
        max_retries=3,
        max_tokens=analysis_config.max_tokens,
        timeout=analysis_config.timeout_s,
    )


class StructuredChatModel:
    """System + user prompt in, raw JSON string out.

    Call options (temperature, ``response_format``) are bound per call so one
    underlying client serves both analysis and resume parsing.
    """

    def __init__(
        self,
        llm: Optional[BaseChatModel] = None,
        analysis_config: Optional[AnalysisConfig] = None,
    ):
        self.config = analysis_config or AnalysisConfig()
        self._llm = llm

    @property
    def llm(self) -> BaseChatModel:
        # Built on first use so a missing API key surfaces as a failed call
        if self._llm is None:
            self._llm = build_openai_chat_model(self.config)
        return self._llm

    async def chat(
        self,
        system: str,
        user: str,
        temperature: float = 0.3,
        json_object_response: bool = True,
        max_tokens: Optional[int] = None,
    ) -> str:
        options: dict = {"temperature": temperature}
        if json_object_response:
            options["response_format"] = {"type": "json_object"}
        if max_tokens is not None:
            options["max_tokens"] = max_tokens

        messages = [SystemMessage(content=system), HumanMessage(content=user)]
        if self._llm is None and not self.config.openai_api_key:
            raise AnalysisFailed("OPENAI_API_KEY is required for analysis")
        try:
            message = await asyncio.wait_for(
                self.llm.bind(**options).ainvoke(messages),
                timeout=self.config.timeout_s,
            )
        except asyncio.TimeoutError as exc:
            raise AnalysisFailed(
                f"Chat model timed out after {self.config.timeout_s}s"
            ) from exc
        except Exception as exc:
            logger.error(f"Chat model call failed: {exc}")
            raise AnalysisFailed(f"LLM request failed: {exc}") from exc

        content = message.content
        if not isinstance(content, str):
            raise AnalysisFailed("Chat model returned non-text content")
        return content
