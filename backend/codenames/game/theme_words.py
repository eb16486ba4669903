from __future__ import annotations

import json
import logging
import re

import httpx

from ..config import Config
from .errors import ThemeRejected, WordGenerationError
from .models import GRID_SIZE

logger = logging.getLogger(__name__)


# Only the theme typed by the host is screened; generated words are not.
SENSITIVE_PATTERNS = [
    "色情", "性爱", "裸体", "裸", "黄", "av", "porn", "sex", "nude", "naked",
    "暴力", "血腥", "杀戮", "杀", "死", "毒品", "毒", "赌博", "赌", "恐怖",
    "炸弹", "爆炸", "枪", "武器", "攻击", "邪教", "反动", "政治",
]

PROMPT = """请根据主题为"行动代号"游戏生成{count}个中文词汇。

主题："{theme}"{exclude}

要求：
1. 生成{count}个不同的词汇，每个词1-5个字，可以发散一点，抽象一点
2. 词汇以2个字为主，可以有少量1字或4字或5字的词汇
3. 返回JSON数组格式
4. 只返回JSON数组，不要有其他说明文字

请生成{count}个词汇："""


def contains_sensitive_content(theme: str) -> bool:
    t = theme.lower()
    return any(p.lower() in t for p in SENSITIVE_PATTERNS)


def _clean(words: list) -> list[str]:
    return [w.strip() for w in words if isinstance(w, str) and w.strip()]


def parse_words(content: str, max_length: int = 10) -> list[str]:
    """Pull a word list out of a model reply.

    Tries the whole reply as JSON, then the first embedded JSON array, then
    falls back to splitting on newlines and commas.
    """
    try:
        data = json.loads(content)
        if isinstance(data, list):
            return _clean(data)
    except ValueError:
        match = re.search(r"\[[\s\S]*?\]", content)
        if match:
            try:
                data = json.loads(match.group(0))
                if isinstance(data, list):
                    return _clean(data)
            except ValueError:
                pass

    lines = [line.strip() for line in re.split(r"[\n,，]", content)]
    lines = [line for line in lines if line and not re.match(r"^\d+[.、\s]", line)]
    out = []
    for line in lines:
        w = re.sub(r"^\d+[.、\s]+", "", line)
        w = re.sub(r"^[\"']|[\"']$", "", w).strip()
        if w and len(w) <= max_length:
            out.append(w)
    return out


class ThemeWordGenerator:
    """Asks a chat-completions endpoint for a full grid of themed words."""

    def __init__(
        self,
        api_url: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        max_attempts: int | None = None,
        max_word_length: int | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_url = api_url or Config.AI_API_URL
        self.api_key = Config.AI_API_KEY if api_key is None else api_key
        self.model = model or Config.AI_MODEL
        self.timeout = timeout or Config.AI_TIMEOUT_SEC
        self.max_attempts = max_attempts or Config.AI_MAX_ATTEMPTS
        self.max_word_length = max_word_length or Config.WORD_MAX_LENGTH
        self.transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def generate(self, theme: str, count: int = GRID_SIZE) -> list[str]:
        theme = (theme or "").strip()
        if not theme:
            raise ThemeRejected("empty theme")
        if contains_sensitive_content(theme):
            raise ThemeRejected("theme contains inappropriate content")
        if not self.enabled:
            raise WordGenerationError("theme word generation is not configured")

        words: list[str] = []
        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            for attempt in range(1, self.max_attempts + 1):
                if len(words) >= count:
                    break
                batch = self._batch(client, theme, count - len(words), words)
                for w in batch:
                    if w not in words and len(w) <= self.max_word_length:
                        words.append(w)
                logger.info(
                    "theme %r attempt %d: %d words in batch, %d total",
                    theme,
                    attempt,
                    len(batch),
                    len(words),
                )

        if len(words) < count:
            raise WordGenerationError(f"only {len(words)} of {count} words generated, try another theme")
        return words[:count]

    def _batch(self, client: httpx.Client, theme: str, count: int, exclude: list[str]) -> list[str]:
        exclude_prompt = f"注意：不要与以下词汇重复：{'、'.join(exclude)}" if exclude else ""
        body = {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": PROMPT.format(count=count, theme=theme, exclude=exclude_prompt),
                }
            ],
            "temperature": 0.8,
            "max_tokens": 800,
        }
        try:
            res = client.post(
                self.api_url,
                json=body,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            res.raise_for_status()
            data = res.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("theme word batch failed: %s", exc)
            return []

        choices = data.get("choices") if isinstance(data, dict) else None
        choice = choices[0] if isinstance(choices, list) and choices else None
        if not isinstance(choice, dict):
            logger.warning("theme word batch had an unexpected reply shape")
            return []
        if choice.get("finish_reason") == "content_filter":
            logger.info("theme %r filtered by the model", theme)
            return []
        message = choice.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            return []
        return parse_words(content, self.max_word_length)
