"""
LLM insight formatting.

Two thin boundaries to hosted language models, both LangChain chat models:

- GeminiInsightGenerator asks four focused questions about a wallet's
  DetailedMetrics and parses the free-text answers into AIInsight records.
- OpenAITradingAnalyzer asks for a JSON TradingAnalysis of a Dune
  TransformedData payload and repairs whatever shape comes back.

Provider failures raise UpstreamError (RateLimitedError on 429). Malformed
model output never raises.
"""

import asyncio
import json
import logging
import re
from typing import Any, Dict, List, Optional

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_openai import ChatOpenAI

from ..config import ScopeConfig
from .errors import ConfigurationError, RateLimitedError, UpstreamError
from .http_client import redact
from .models import (
    AIInsight,
    TradingAnalysis,
    TradingImprovement,
    TradingMistake,
    TradingPatterns,
)
from .numeric_utils import clamp

logger = logging.getLogger(__name__)

CERTAIN_WORDS = ["definitely", "clearly", "shows", "demonstrates"]
UNCERTAIN_WORDS = ["might", "could", "maybe", "possibly"]
IMPACT_WORDS = {
    "HIGH": ["significant", "critical", "important", "major", "substantial"],
    "MEDIUM": ["moderate", "reasonable", "average"],
    "LOW": ["minor", "small", "minimal", "slight"],
}
# Checked in order; the first phrase found wins
ACTION_PHRASES = [
    "should consider",
    "recommend",
    "could benefit from",
    "advise",
    "suggest",
    "need to",
    "must",
    "consider",
]


# ---------------------------------------------------------------------------
# Free-text parsing
# ---------------------------------------------------------------------------

def calculate_confidence(text: str) -> float:
    """0.7 baseline, +0.1 per certainty word present, -0.1 per hedge, clamped to [0, 1]."""
    lowered = text.lower()
    certain = sum(1 for word in CERTAIN_WORDS if word in lowered)
    uncertain = sum(1 for word in UNCERTAIN_WORDS if word in lowered)
    return clamp(0.7 + certain * 0.1 - uncertain * 0.1, 0.0, 1.0)


def determine_impact(text: str) -> str:
    """Impact level with the most keyword hits; ties resolve HIGH, then MEDIUM."""
    lowered = text.lower()
    counts = {level: sum(1 for word in words if word in lowered) for level, words in IMPACT_WORDS.items()}
    top = max(counts.values())
    for level in ("HIGH", "MEDIUM", "LOW"):
        if counts[level] == top:
            return level
    return "LOW"


def extract_action(text: str) -> Optional[str]:
    """Sentence containing the first matching action phrase, if any."""
    lowered = text.lower()
    for phrase in ACTION_PHRASES:
        index = lowered.find(phrase)
        if index == -1:
            continue
        start = text.rfind(".", 0, index) + 1
        end = text.find(".", index)
        sentence = text[start:] if end == -1 else text[start:end]
        return sentence.strip()
    return None


def parse_insights(text: str, insight_type: str) -> List[AIInsight]:
    """
    Split a model reply into insights.

    Each blank-line separated paragraph becomes one insight: its first line is
    the title, the remaining lines joined with spaces the description.

    Args:
        text: Raw model reply
        insight_type: OPPORTUNITY | RISK | PATTERN | RECOMMENDATION

    Returns:
        List of AIInsight (empty for an empty reply)
    """
    insights = []
    for paragraph in (text or "").split("\n\n"):
        if not paragraph:
            continue
        lines = paragraph.split("\n")
        insights.append(AIInsight(
            type=insight_type,
            title=lines[0],
            description=" ".join(lines[1:]),
            confidence=calculate_confidence(paragraph),
            impact=determine_impact(paragraph),
            action=extract_action(paragraph),
        ))
    return insights


def _dump(value: Any) -> str:
    return json.dumps(value if value is not None else {}, default=str)


def build_insight_prompts(metrics: Dict[str, Any]) -> Dict[str, str]:
    """Four prompts (portfolio, risk, pattern, opportunity) over a DetailedMetrics dict."""
    overview = metrics.get("overview") or {}
    trading = metrics.get("tradingStats") or {}
    risk = metrics.get("riskMetrics") or {}
    tokens = metrics.get("tokenMetrics") or []
    swaps = metrics.get("swapMetrics") or {}

    return {
        "portfolio": (
            "Analyze this cryptocurrency portfolio and provide key insights:\n"
            f"Overview: {_dump(overview)}\n"
            f"Holdings: {_dump(tokens)}\n"
            f"Performance: {_dump({k: v for k, v in trading.items() if k not in ('tradingFrequency', 'patterns')})}\n\n"
            "Focus on:\n"
            "1. Portfolio composition and diversification\n"
            "2. Performance analysis\n"
            "3. Key strengths and weaknesses\n\n"
            "Provide 2-3 specific, actionable insights."
        ),
        "risk": (
            "Analyze the risk factors in this cryptocurrency portfolio:\n"
            f"Risk Metrics: {_dump(risk)}\n"
            f"Holdings: {_dump(tokens)}\n"
            f"DEX Exposure: {_dump(swaps.get('dexDistribution'))}\n\n"
            "Focus on:\n"
            "1. Concentration risk\n"
            "2. Protocol exposure\n"
            "3. Market volatility exposure\n\n"
            "Provide 2-3 specific risk warnings or recommendations."
        ),
        "pattern": (
            "Analyze trading patterns in this wallet:\n"
            f"Daily Activity: {_dump(trading.get('tradingFrequency'))}\n"
            f"Detected Patterns: {_dump(trading.get('patterns'))}\n"
            f"Swap Timing: {_dump(swaps.get('timing'))}\n\n"
            "Focus on:\n"
            "1. Trading frequency and timing\n"
            "2. Success patterns\n"
            "3. Common mistakes or inefficiencies\n\n"
            "Identify 2-3 key patterns or behaviors."
        ),
        "opportunity": (
            "Identify potential opportunities for this cryptocurrency portfolio:\n"
            f"Current Holdings: {_dump(tokens)}\n"
            f"Swap Metrics: {_dump({k: v for k, v in swaps.items() if k != 'timing'})}\n"
            f"Risk Metrics: {_dump(risk)}\n\n"
            "Focus on:\n"
            "1. Yield opportunities\n"
            "2. Portfolio optimization\n"
            "3. Risk-adjusted improvements\n\n"
            "Suggest 2-3 specific opportunities or improvements."
        ),
    }


PROMPT_TYPES = {
    "portfolio": "PATTERN",
    "risk": "RISK",
    "pattern": "PATTERN",
    "opportunity": "OPPORTUNITY",
}


def message_text(content: Any) -> str:
    """Flatten a chat message's content (a string or a list of text blocks)."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for item in content:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict):
                parts.append(str(item.get("text", "")))
        return "".join(parts)
    return str(content or "")


class ChatModelClient:
    """
    Base class for the LangChain chat model boundaries.

    The chat model is built lazily on first use, so constructing a client
    without an API key only fails when a request is actually made. Tests and
    callers may inject any object with an async ``ainvoke(messages)``.
    """

    source = "llm"
    key_name = "API_KEY"

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        llm: Optional[Any] = None,
        timeout_seconds: float = 60.0,
        max_retries: Optional[int] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.timeout_seconds = timeout_seconds
        # retry attempts count the first try; LangChain counts only the retries
        self.max_retries = max_retries if max_retries is not None else max(0, ScopeConfig.get_retry_attempts() - 1)
        self._llm = llm

    def _build_llm(self):
        raise NotImplementedError

    @property
    def llm(self):
        if self._llm is None:
            if not self.api_key:
                raise ConfigurationError(f"{self.key_name} is not configured")
            self._llm = self._build_llm()
        return self._llm

    async def call_llm(self, prompt: str, system_message: Optional[str] = None) -> str:
        """
        Send one prompt and return the reply text.

        Raises:
            ConfigurationError: No API key
            RateLimitedError: Provider answered 429 after its own retries
            UpstreamError: Any other provider failure
        """
        llm = self.llm
        messages = []
        if system_message:
            messages.append(SystemMessage(content=system_message))
        messages.append(HumanMessage(content=prompt))

        try:
            response = await llm.ainvoke(messages)
        except Exception as e:
            status = getattr(e, "status_code", None) or getattr(e, "code", None)
            if status == 429:
                raise RateLimitedError(self.source, details=redact(str(e))) from e
            logger.error(f"[{self.source}] Chat model call failed: {type(e).__name__}")
            raise UpstreamError(self.source, f"{self.source} request failed", details=redact(str(e))) from e
        return message_text(getattr(response, "content", response))

    async def close(self):
        """Drop the chat model; there is no session to close."""
        self._llm = None


class GeminiInsightGenerator(ChatModelClient):
    """Generates AIInsight lists with Gemini through langchain-google-genai."""

    source = "gemini"
    key_name = "GEMINI_API_KEY"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        llm: Optional[Any] = None,
        **kwargs,
    ):
        kwargs.setdefault("timeout_seconds", 60.0)
        super().__init__(
            api_key or ScopeConfig.get_gemini_api_key(),
            model or ScopeConfig.get_gemini_model(),
            llm=llm,
            **kwargs,
        )

    def _build_llm(self):
        return ChatGoogleGenerativeAI(
            model=self.model,
            google_api_key=self.api_key,
            timeout=self.timeout_seconds,
            max_retries=self.max_retries,
        )

    async def generate_text(self, prompt: str) -> str:
        return await self.call_llm(prompt)

    async def generate_insights(self, metrics: Dict[str, Any], prompt: Optional[str] = None) -> List[AIInsight]:
        """
        Run the four insight prompts concurrently.

        Args:
            metrics: DetailedMetrics dict (camelCase)
            prompt: Optional extra instruction appended to every prompt

        Returns:
            Insights in portfolio, risk, pattern, opportunity order
        """
        prompts = build_insight_prompts(metrics or {})
        if prompt:
            prompts = {name: f"{text}\n\nAdditional context: {prompt}" for name, text in prompts.items()}

        replies = await asyncio.gather(*(self.generate_text(text) for text in prompts.values()))

        insights: List[AIInsight] = []
        for name, reply in zip(prompts, replies):
            insights.extend(parse_insights(reply, PROMPT_TYPES[name]))
        logger.info(f"[Gemini] Generated {len(insights)} insights")
        return insights


# ---------------------------------------------------------------------------
# Structured trading review
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = (
    "You are a professional trading analyst. Analyze the provided trading data and "
    "provide actionable insights. Return ONLY the JSON response without any markdown "
    "formatting or additional text."
)

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*")
_FENCE_CLOSE = re.compile(r"\s*```\s*$")


def clean_response_text(text: str) -> str:
    """Strip markdown code fences around a JSON reply."""
    text = (text or "").strip()
    text = _FENCE_OPEN.sub("", text)
    text = _FENCE_CLOSE.sub("", text)
    return text.strip()


def build_trading_prompt(transformed: Dict[str, Any]) -> str:
    return (
        "Please analyze the following trading data and provide detailed insights:\n\n"
        f"Trading Data:\n{json.dumps(transformed, indent=2, default=str)}\n\n"
        "Please analyze this data and provide:\n\n"
        "1. Overall Performance Analysis\n"
        "2. Time-Based Analysis\n"
        "3. Position Size Analysis\n"
        "4. Pattern Recognition\n"
        "5. Risk Management Assessment\n\n"
        "Most importantly, provide:\n"
        "- Trading mistakes and their severity\n"
        "- Specific improvements by category\n"
        "- Identified patterns in winning and losing trades\n\n"
        "IMPORTANT: Return ONLY a valid JSON object with the following structure, "
        "without any markdown formatting or additional text:\n"
        "{\n"
        '    "mistakes": [\n'
        '        { "title": string, "description": string, "severity": "high|medium|low" }\n'
        "    ],\n"
        '    "improvements": [\n'
        '        { "category": string, "recommendations": string[] }\n'
        "    ],\n"
        '    "patterns": {\n'
        '        "winning": string[],\n'
        '        "losing": string[],\n'
        '        "general": string[]\n'
        "    }\n"
        "}"
    )


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v is not None]


def validate_analysis(raw: Any) -> TradingAnalysis:
    """
    Coerce a decoded model reply into a TradingAnalysis.

    Missing fields get defaults (``Unknown Issue``, ``medium``, ``General``);
    a non-object reply yields the empty analysis.
    """
    if not isinstance(raw, dict):
        return TradingAnalysis()

    mistakes = []
    for item in raw.get("mistakes") or []:
        if not isinstance(item, dict):
            continue
        severity = item.get("severity")
        mistakes.append(TradingMistake(
            title=item.get("title") or "Unknown Issue",
            description=item.get("description") or "No description provided",
            severity=severity if severity in ("high", "medium", "low") else "medium",
        ))

    improvements = []
    for item in raw.get("improvements") or []:
        if not isinstance(item, dict):
            continue
        recommendations = item.get("recommendations")
        if isinstance(recommendations, list):
            recommendations = [str(r) for r in recommendations]
        else:
            recommendations = [str(recommendations or "No recommendations provided")]
        improvements.append(TradingImprovement(
            category=item.get("category") or "General",
            recommendations=recommendations,
        ))

    patterns = raw.get("patterns") if isinstance(raw.get("patterns"), dict) else {}
    return TradingAnalysis(
        mistakes=mistakes,
        improvements=improvements,
        patterns=TradingPatterns(
            winning=_string_list(patterns.get("winning")),
            losing=_string_list(patterns.get("losing")),
            general=_string_list(patterns.get("general")),
        ),
    )


def parse_trading_analysis(text: str) -> TradingAnalysis:
    """Decode a model reply; invalid JSON degrades to the empty analysis."""
    cleaned = clean_response_text(text)
    try:
        raw = json.loads(cleaned)
    except ValueError as e:
        logger.warning(f"[OpenAI] Could not parse analysis reply ({e}); returning empty analysis")
        logger.debug(f"[OpenAI] Raw reply: {text!r}")
        return TradingAnalysis()
    return validate_analysis(raw)


class OpenAITradingAnalyzer(ChatModelClient):
    """Structured trading review with OpenAI chat models through langchain-openai."""

    source = "openai"
    key_name = "OPENAI_API_KEY"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        llm: Optional[Any] = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        **kwargs,
    ):
        kwargs.setdefault("timeout_seconds", 90.0)
        super().__init__(
            api_key or ScopeConfig.get_openai_api_key(),
            model or ScopeConfig.get_openai_model(),
            llm=llm,
            **kwargs,
        )
        self.temperature = temperature
        self.max_tokens = max_tokens

    def _build_llm(self):
        return ChatOpenAI(
            model=self.model,
            api_key=self.api_key,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            timeout=self.timeout_seconds,
            max_retries=self.max_retries,
        )

    async def analyze_trading(self, transformed: Dict[str, Any]) -> TradingAnalysis:
        """
        Ask the model for a TradingAnalysis of a TransformedData dict.

        Raises:
            ConfigurationError: No API key
            RateLimitedError, UpstreamError: Provider failure
        """
        logger.info("[OpenAI] Analyzing trading data")
        content = await self.call_llm(build_trading_prompt(transformed), system_message=SYSTEM_PROMPT)
        return parse_trading_analysis(content)
