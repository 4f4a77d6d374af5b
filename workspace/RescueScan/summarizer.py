"""
Natural-language diagnoses for RescueScan

Summaries are best effort: every failure of the text-completion service
ends in a deterministic fallback, never in an exception.
"""
import json
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests

from config import Config
from models import Diagnosis, SEVERITIES


class ChatClientError(Exception):
    """Generic error from the text-completion backend."""


class ChatClient:
    """
    Client for OpenAI-compatible /chat/completions HTTP APIs.

    base_url is something like "https://api.openai.com/v1"; api_key is sent
    as a Bearer token.
    """

    def __init__(self, api_key: Optional[str], base_url: str = 'https://api.openai.com/v1',
                 timeout: int = 30, session: Optional[requests.Session] = None):
        self.api_key = (api_key or '').strip()
        self.base_url = base_url
        self.timeout = timeout
        self.session = session or requests.Session()

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def complete(self, messages: List[Dict[str, str]], model: str = 'gpt-4o-mini',
                 temperature: float = 0.3, max_tokens: int = 400,
                 response_format: Optional[Dict[str, Any]] = None) -> str:
        """Send a chat request and return the first choice's content"""
        if not self.api_key:
            raise ChatClientError("API key not configured.")

        url = f"{self.base_url.rstrip('/')}/chat/completions"
        payload: Dict[str, Any] = {
            'model': model,
            'messages': messages,
            'temperature': temperature,
            'max_tokens': max_tokens,
        }
        if response_format:
            payload['response_format'] = response_format

        headers = {
            'Content-Type': 'application/json',
            'Authorization': f"Bearer {self.api_key}",
        }

        try:
            resp = self.session.post(url, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise ChatClientError(f"Error contacting completion service: {e}") from e

        if resp.status_code < 200 or resp.status_code >= 300:
            raise ChatClientError(f"Completion service returned {resp.status_code}: {resp.text[:300]}")

        try:
            data = resp.json()
            content = data['choices'][0]['message']['content']
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ChatClientError(f"Unexpected response from completion service: {e}") from e

        if not isinstance(content, str):
            raise ChatClientError("Completion service returned no text content")
        return content


SYSTEM_PROMPT = (
    "You are an expert web application troubleshooter. A conflict scanner "
    "enabled components one at a time and recorded the ones that caused a "
    "fatal error. Explain the likely cause and what the site owner should do. "
    "Respond ONLY with a JSON object with the keys \"summary\", "
    "\"recommendation\", \"technical_details\" and \"severity\" "
    "(one of \"low\", \"medium\", \"high\")."
)

EMAIL_PROMPT = (
    "Draft a concise email to a component developer describing the issue, "
    "key errors, and steps taken. Keep it under 220 words. Be polite and clear."
)


def build_prompt(conflicts: Sequence[Dict[str, str]]) -> str:
    lines = ["Conflicting components found by the scan:"]
    for conflict in conflicts:
        name = conflict.get('name') or conflict.get('file') or 'unknown'
        error = (conflict.get('error') or 'no error message').strip()
        lines.append(f"- {name}: {error}")
    return "\n".join(lines)


class Summarizer:
    """Turns conflict findings into a Diagnosis"""

    def __init__(self, client: ChatClient, config: Config):
        self.client = client
        self.config = config

    @classmethod
    def from_config(cls, config: Config) -> 'Summarizer':
        client = ChatClient(config.ai_api_key, base_url=config.ai_base_url, timeout=config.ai_timeout)
        return cls(client, config)

    def summarize(self, conflicts: Sequence[Dict[str, str]]) -> Diagnosis:
        if not conflicts:
            return Diagnosis(
                summary="No conflicts detected. Every component enabled cleanly.",
                recommendation="No action needed. All components can stay enabled.",
                technical_details="The scan found no fatal errors.",
                severity='low',
            )

        messages = [
            {'role': 'system', 'content': SYSTEM_PROMPT},
            {'role': 'user', 'content': build_prompt(conflicts)},
        ]
        try:
            content = self.client.complete(
                messages,
                model=self.config.ai_model,
                temperature=self.config.ai_temperature,
                max_tokens=self.config.ai_max_tokens,
                response_format={'type': 'json_object'},
            )
            return self._parse(content)
        except Exception as e:
            # Summaries must never block the restore step
            return self._fallback(conflicts, str(e) or e.__class__.__name__)

    def draft_email(self, issue: str, conflicts: Sequence[Dict[str, str]],
                    log_excerpt: Sequence[str] = ()) -> Tuple[str, str]:
        """Developer email text and its source ('ai' or 'fallback')"""
        context = {
            'issue': issue,
            'conflicts': list(conflicts),
            'log_excerpt': list(log_excerpt)[-40:],
            'actions_taken': ['conflict scan run', 'conflicting components left disabled'],
        }
        messages = [
            {'role': 'system', 'content': EMAIL_PROMPT},
            {'role': 'user', 'content': json.dumps(context)},
        ]
        try:
            text = self.client.complete(
                messages,
                model=self.config.ai_model,
                temperature=self.config.ai_temperature,
                max_tokens=380,
            ).strip()
            if text:
                return text, 'ai'
        except ChatClientError as e:
            print(f"⚠️  Email draft falls back to the template: {e}")

        names = ', '.join(c.get('name') or c.get('file', '?') for c in conflicts) or 'unknown'
        errors = "\n".join(f"- {c.get('error')}" for c in conflicts if c.get('error'))
        recent = "\n".join(list(log_excerpt)[-10:])
        text = (
            "Hi there,\n\n"
            f"My site is experiencing a critical error. {issue or ''}".rstrip() + "\n\n"
            f"Suspected components: {names}\n\n"
            f"Errors:\n{errors or '- none captured'}\n\n"
            f"Recent log lines:\n{recent or '(none)'}\n\n"
            "Steps taken: ran a conflict scan, left the conflicting components disabled.\n"
            "Thanks for taking a look."
        )
        return text, 'fallback'

    def _parse(self, content: str) -> Diagnosis:
        text = content.strip()
        if text.startswith('```'):
            text = text.strip('`')
            if text.lower().startswith('json'):
                text = text[4:]
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("Diagnosis response is not a JSON object")

        summary = str(data.get('summary') or '').strip()
        if not summary:
            raise ValueError("Diagnosis response has no summary")

        severity = str(data.get('severity') or 'medium').strip().lower()
        if severity not in SEVERITIES:
            severity = 'medium'

        details = data.get('technical_details') or ''
        if not isinstance(details, str):
            details = json.dumps(details)

        return Diagnosis(
            summary=summary,
            recommendation=str(data.get('recommendation') or '').strip(),
            technical_details=details.strip(),
            severity=severity,
        )

    def _fallback(self, conflicts: Sequence[Dict[str, str]], reason: str) -> Diagnosis:
        names = [c.get('name') or c.get('file') or 'unknown' for c in conflicts]
        return Diagnosis(
            summary=f"Detected {len(names)} conflicting component(s): {', '.join(names)}.",
            recommendation="Keep the conflicting component(s) disabled and contact their developers.",
            technical_details=f"Automatic analysis unavailable: {reason}",
            severity='medium',
        )
