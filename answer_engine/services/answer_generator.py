# answer_engine/services/answer_generator.py
import logging
import re
from abc import ABC, abstractmethod
from typing import Optional

from langchain_core.messages import HumanMessage
from langchain_core.prompts import ChatPromptTemplate
from langchain_openai import ChatOpenAI

from answer_engine import config
from answer_engine.errors import GenerationFailed

logger = logging.getLogger(__name__)

DATA_URI_RE = re.compile(
    r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>[A-Za-z0-9+/=\s]+)$"
)


def is_data_uri(value: str) -> bool:
    return bool(value and DATA_URI_RE.match(value.strip()))


class AnswerGenerator(ABC):
    @abstractmethod
    def generate(
        self,
        questionText: Optional[str],
        questionImage: Optional[str],
        profile: str,
    ) -> str:
        """Return a non-empty answer or raise GenerationFailed."""


# -------------------------
# Prompt
# -------------------------
answer_prompt = ChatPromptTemplate.from_messages([
    (
        "system",
        "You answer survey questions on behalf of a user, accurately and "
        "consistently with the user's profile.\n\n"
        "The question may be given as text, as an image, or both. Read all of "
        "it, including any multiple-choice options.\n\n"
        "- If it is a multiple-choice question, answer with one of the "
        "offered options only.\n"
        "- If it is an open-ended question, give a concise, relevant answer.\n\n"
        "Return ONLY the answer."
    ),
    (
        "user",
        "USER PROFILE:\n{profile}\n\n"
        "QUESTION TEXT:\n{question}"
    ),
])


def _content_text(content) -> str:
    if isinstance(content, str):
        return content
    # Multi-part responses: keep the text parts
    parts = []
    for part in content or []:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text", ""))
    return "".join(parts)


class LLMAnswerGenerator(AnswerGenerator):
    def __init__(self, llm=None):
        if llm is None:
            if not config.OPENAI_API_KEY:
                raise RuntimeError("OPENAI_API_KEY is required")
            llm = ChatOpenAI(
                model=config.CHAT_MODEL,
                temperature=config.CHAT_TEMPERATURE,
                api_key=config.OPENAI_API_KEY,
            )
        self.llm = llm

    def build_messages(
        self,
        questionText: Optional[str],
        questionImage: Optional[str],
        profile: str,
    ):
        messages = answer_prompt.format_messages(
            profile=profile,
            question=(questionText or "").strip() or "(see image)",
        )

        if questionImage:
            text = messages[-1].content
            messages[-1] = HumanMessage(content=[
                {"type": "text", "text": text + "\n\nQUESTION IMAGE:"},
                {"type": "image_url", "image_url": {"url": questionImage.strip()}},
            ])

        return messages

    def generate(
        self,
        questionText: Optional[str],
        questionImage: Optional[str],
        profile: str,
    ) -> str:
        messages = self.build_messages(questionText, questionImage, profile)

        try:
            response = self.llm.invoke(messages)
        except Exception as e:
            logger.warning("answer generation failed: %s", e)
            raise GenerationFailed() from e

        answer = _content_text(getattr(response, "content", None)).strip()

        if not answer:
            raise GenerationFailed("The model returned an empty answer. Please try again.")

        return answer
