"""
GEO content generation.

Writes short local-SEO articles for a keyword/location pair with an OpenAI
chat model through LangChain. When no API key is configured, or the model
call fails, a deterministic template article is returned instead so callers
always get content back.
"""

import logging
import os
import re
from typing import Optional

from dotenv import load_dotenv
from langchain_core.messages import SystemMessage
from langchain_core.prompts import ChatPromptTemplate
from langchain_openai import ChatOpenAI
from pydantic import BaseModel, ConfigDict, Field

from seo_audit_engine import utc_timestamp

load_dotenv()

logger = logging.getLogger(__name__)

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4.1-mini")

DEFAULT_LOCATION = "United Kingdom"
MAX_TITLE_LENGTH = 120

SYSTEM_PROMPT = "You are a careful local SEO writer."

ARTICLE_PROMPT = ChatPromptTemplate.from_messages(
    [
        SystemMessage(content=SYSTEM_PROMPT),
        (
            "human",
            'Write a concise, local SEO article about "{keyword}" in "{location}".\n'
            "Constraints: factual tone, avoid unverifiable claims, include a short "
            "FAQ (3 Qs), and finish with a clear CTA.",
        ),
    ]
)


class GeneratedArticle(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    title: str
    body: str
    model: str
    created_at: str = Field(alias="createdAt")


def build_fallback_article(keyword: str, location: str) -> GeneratedArticle:
    """Deterministic template article used when no model is available."""
    title = f"{keyword} in {location}: local guide (template)"
    body = (
        f"# {title}\n\n"
        "## Quick answer\n"
        f"If searching for **{keyword}** in **{location}**, prioritize businesses "
        "with strong reviews, clear pricing, and evidence of recent work.\n\n"
        "## What to check\n"
        f"- Service coverage in {location} (and nearby)\n"
        "- Response times and emergency availability\n"
        "- Transparent pricing and guarantees\n\n"
        "## Next steps\n"
        "Collect 3 quotes, verify insurance, and confirm availability for your postcode."
    )
    return GeneratedArticle(
        title=title, body=body, model="fallback", created_at=utc_timestamp()
    )


def extract_title(content: str, keyword: str, location: str) -> str:
    """First non-blank line of the article without markdown heading marks."""
    first_line = next((line for line in content.splitlines() if line.strip()), "")
    title = re.sub(r"^#+\s*", "", first_line.strip())[:MAX_TITLE_LENGTH]
    return title or f"{keyword} in {location}"


class ContentGenerator:
    """Service for generating GEO articles with the LLM."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self.api_key = api_key or OPENAI_API_KEY
        self.model = model or OPENAI_MODEL
        self.llm = None

        if self.api_key:
            logger.info(f"Using OpenAI model: {self.model}")
            self.llm = ChatOpenAI(
                model=self.model,
                temperature=0.6,
                streaming=False,
                api_key=self.api_key,
            )
        else:
            logger.warning(
                "OPENAI_API_KEY is not set. Content generation will use the template fallback."
            )

    async def _generate_with_llm(self, keyword: str, location: str) -> GeneratedArticle:
        chain = ARTICLE_PROMPT | self.llm
        message = await chain.ainvoke({"keyword": keyword, "location": location})

        content = message.content if isinstance(message.content, str) else ""
        metadata = getattr(message, "response_metadata", None) or {}
        return GeneratedArticle(
            title=extract_title(content, keyword, location),
            body=content,
            model=metadata.get("model_name") or "openai",
            created_at=utc_timestamp(),
        )

    async def generate(
        self, keyword: str, location: str = DEFAULT_LOCATION
    ) -> GeneratedArticle:
        """
        Generate an article for a keyword in a location.

        Args:
            keyword: Search phrase the article targets
            location: Place the article is written for

        Returns:
            GeneratedArticle from the model, or the template fallback
        """
        if self.llm is None:
            return build_fallback_article(keyword, location)

        try:
            article = await self._generate_with_llm(keyword, location)
            logger.info(f"Generated article for '{keyword}' in '{location}' with {article.model}")
            return article
        except Exception as e:
            logger.warning(f"Content generation failed, using template fallback: {str(e)}")
            return build_fallback_article(keyword, location)


def create_generator() -> ContentGenerator:
    """Factory function to create a new content generator instance."""
    return ContentGenerator()
