# seo_scout/crawler/robots.py
"""
Parser and checker for robots.txt rules (RFC 9309), plus the per-crawl
policy object that loads rules once per origin.
"""
from __future__ import annotations

import asyncio
import re
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlsplit

from aiohttp import ClientError, ClientSession

from seo_scout.logger import get_logger

__all__ = ("RobotsTxtRules", "RobotsPolicy")

log = get_logger("robots")


class RobotsTxtRules:
    """
    Parses robots.txt (RFC 9309).
    An empty Disallow allows every path.
    """
    _WILDCARD_RE = re.compile(r"(\*|\$)")

    def __init__(self, text: str) -> None:
        self._groups: List[Dict[str, object]] = []
        self._regex_cache: Dict[str, re.Pattern[str]] = {}
        self._parse(text)

    def can_fetch(self, user_agent: str, path: str) -> bool:
        group = self._match_group(user_agent)
        if group is None:
            return True
        best_len = -1
        allow: Optional[bool] = None
        for directive, pattern in group["directives"]:  # type: ignore[index]
            if not self._match_path(path, pattern):
                continue
            length = self._rule_len(pattern)
            if length > best_len or (length == best_len and directive == "allow" and allow is False):
                best_len = length
                allow = directive == "allow"
        return True if allow is None else allow

    def crawl_delay(self, user_agent: str) -> Optional[float]:
        group = self._match_group(user_agent)
        return None if group is None else group.get("crawl_delay")  # type: ignore[return-value]

    def _new_group(self, agents: List[str]) -> Dict[str, object]:
        group: Dict[str, object] = {"agents": agents, "directives": [], "crawl_delay": None}
        self._groups.append(group)
        return group

    def _parse(self, text: str) -> None:
        current: Optional[Dict[str, object]] = None
        for raw in text.splitlines():
            line = raw.split("#", 1)[0].strip()
            if not line:
                continue
            key, _, val = line.partition(":")
            key = key.lower().strip()
            val = val.strip()
            if key == "user-agent":
                if current is None or (current["agents"] and (current["directives"] or current["crawl_delay"] is not None)):
                    current = self._new_group([])
                current["agents"].append(val.lower())  # type: ignore[attr-defined]
            elif key in ("allow", "disallow"):
                # empty Disallow allows everything
                if key == "disallow" and val == "":
                    continue
                if current is None:
                    current = self._new_group(["*"])
                current["directives"].append((key, val))  # type: ignore[attr-defined]
            elif key == "crawl-delay":
                if current is None:
                    current = self._new_group(["*"])
                try:
                    current["crawl_delay"] = float(val)
                except ValueError:
                    pass

    def _match_group(self, user_agent: str) -> Optional[Dict[str, object]]:
        ua = user_agent.lower()
        for group in self._groups:
            if any(a != "*" and ua.startswith(a) for a in group["agents"]):  # type: ignore[attr-defined]
                return group
        for group in self._groups:
            if "*" in group["agents"]:  # type: ignore[operator]
                return group
        return None

    def _match_path(self, path: str, pattern: str) -> bool:
        if pattern not in self._regex_cache:
            esc = re.escape(pattern).replace(r"\*", ".*")
            if pattern.endswith("$"):
                esc = esc[:-2] + "$"
            else:
                esc += ".*"
            self._regex_cache[pattern] = re.compile(f"^{esc}")
        return bool(self._regex_cache[pattern].match(path))

    @classmethod
    def _rule_len(cls, pattern: str) -> int:
        return len(cls._WILDCARD_RE.sub("", pattern))


def _origin(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def _path_of(url: str) -> str:
    parts = urlsplit(url)
    path = parts.path or "/"
    return f"{path}?{parts.query}" if parts.query else path


class RobotsPolicy:
    """
    robots.txt rules for every origin seen during one crawl.

    :meth:`prepare` loads ``/robots.txt`` once per origin; :meth:`is_allowed`
    answers from the loaded rules. A missing or unreadable policy allows
    everything.
    """

    def __init__(self, session: ClientSession, user_agent: str) -> None:
        self.session = session
        self.user_agent = user_agent
        self._rules: Dict[str, Optional[RobotsTxtRules]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    async def prepare(self, url: str) -> None:
        origin = _origin(url)
        if origin in self._rules:
            return
        lock = self._locks.setdefault(origin, asyncio.Lock())
        async with lock:
            if origin not in self._rules:
                self._rules[origin] = await self._load(origin)

    def is_allowed(self, url: str, agent_name: str) -> bool:
        rules = self._rules.get(_origin(url))
        if rules is None:
            return True
        return rules.can_fetch(agent_name, _path_of(url))

    def crawl_delay(self, url: str, agent_name: str) -> Optional[float]:
        rules = self._rules.get(_origin(url))
        return None if rules is None else rules.crawl_delay(agent_name)

    async def _load(self, origin: str) -> Optional[RobotsTxtRules]:
        robots_url = f"{origin}/robots.txt"
        try:
            async with self.session.get(robots_url, headers={"User-Agent": self.user_agent}) as resp:
                if resp.status == 200:
                    text = await resp.text(errors="replace")
                    log.debug("robots.txt loaded from %s", robots_url)
                    return RobotsTxtRules(text)
                log.debug("robots.txt %s -> HTTP %s", robots_url, resp.status)
                return None
        except (ClientError, asyncio.TimeoutError, UnicodeDecodeError) as exc:
            log.warning("Error loading robots.txt from %s: %s", robots_url, exc)
            return None
