"""Tests for the diagnosis summarizer and the completion client."""
import pytest
import requests

from conftest import FakeChatClient
from summarizer import ChatClient, ChatClientError, Summarizer, build_prompt

CONFLICTS = [{'name': 'B', 'file': 'b/b.php', 'error': 'foo'}]


class TestSummarize:

    def test_no_conflicts_needs_no_service_call(self, summarizer, chat):
        diagnosis = summarizer.summarize([])
        assert diagnosis.severity == 'low'
        assert diagnosis.summary
        assert chat.calls == []

    def test_parses_json_reply(self, summarizer, chat):
        diagnosis = summarizer.summarize(CONFLICTS)

        assert diagnosis.summary == 'B breaks the site'
        assert diagnosis.recommendation == 'Keep B disabled'
        assert diagnosis.severity == 'high'

        messages, options = chat.calls[0]
        assert options['response_format'] == {'type': 'json_object'}
        assert '- B: foo' in messages[-1]['content']

    def test_fenced_reply_is_accepted(self, config):
        chat = FakeChatClient(reply='```json\n{"summary": "s", "severity": "LOW"}\n```')
        diagnosis = Summarizer(chat, config).summarize(CONFLICTS)
        assert diagnosis.summary == 's'
        assert diagnosis.severity == 'low'

    def test_unknown_severity_becomes_medium(self, config):
        chat = FakeChatClient(reply='{"summary": "s", "severity": "catastrophic"}')
        assert Summarizer(chat, config).summarize(CONFLICTS).severity == 'medium'

    def test_service_error_gives_fallback(self, config):
        chat = FakeChatClient(error='Completion service returned 503')
        diagnosis = Summarizer(chat, config).summarize(CONFLICTS)

        assert diagnosis.severity == 'medium'
        assert diagnosis.summary == 'Detected 1 conflicting component(s): B.'
        assert 'returned 503' in diagnosis.technical_details

    @pytest.mark.parametrize('reply', ['not json at all', '[1, 2]', '{"severity": "high"}', None])
    def test_malformed_reply_gives_fallback(self, config, reply):
        diagnosis = Summarizer(FakeChatClient(reply=reply), config).summarize(CONFLICTS)
        assert diagnosis.severity == 'medium'
        assert diagnosis.technical_details.startswith('Automatic analysis unavailable:')

    def test_missing_api_key_gives_fallback(self, config):
        diagnosis = Summarizer.from_config(config).summarize(CONFLICTS)
        assert diagnosis.severity == 'medium'
        assert 'API key not configured' in diagnosis.technical_details


def test_build_prompt_defaults():
    prompt = build_prompt([{'file': 'x/x.php'}])
    assert '- x/x.php: no error message' in prompt


class TestDraftEmail:

    def test_ai_text(self, config):
        chat = FakeChatClient(reply='  Dear developer...  ')
        text, source = Summarizer(chat, config).draft_email('site down', CONFLICTS, ['line'])
        assert (text, source) == ('Dear developer...', 'ai')

    def test_fallback_text(self, config):
        chat = FakeChatClient(error='down')
        text, source = Summarizer(chat, config).draft_email('site down', CONFLICTS, ['PHP Fatal error: foo'])
        assert source == 'fallback'
        assert 'Suspected components: B' in text
        assert '- foo' in text
        assert 'PHP Fatal error: foo' in text


class FakeHTTPResponse:
    def __init__(self, status_code, payload=None, text=''):
        self.status_code = status_code
        self.payload = payload
        self.text = text

    def json(self):
        if self.payload is None:
            raise ValueError('no json')
        return self.payload


class FakeHTTPSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.posts = []

    def post(self, url, **kwargs):
        self.posts.append((url, kwargs))
        if self.error:
            raise self.error
        return self.response


class TestChatClient:

    def test_returns_first_choice(self):
        session = FakeHTTPSession(FakeHTTPResponse(200, {'choices': [{'message': {'content': 'hi'}}]}))
        client = ChatClient('sk-test', base_url='https://llm.example/v1/', session=session)

        assert client.complete([{'role': 'user', 'content': 'x'}], model='m') == 'hi'
        url, kwargs = session.posts[0]
        assert url == 'https://llm.example/v1/chat/completions'
        assert kwargs['headers']['Authorization'] == 'Bearer sk-test'
        assert kwargs['json']['model'] == 'm'
        assert 'response_format' not in kwargs['json']

    def test_requires_key(self):
        session = FakeHTTPSession()
        with pytest.raises(ChatClientError):
            ChatClient('', session=session).complete([])
        assert session.posts == []

    def test_http_error(self):
        session = FakeHTTPSession(FakeHTTPResponse(429, text='rate limited'))
        with pytest.raises(ChatClientError, match='429'):
            ChatClient('k', session=session).complete([])

    def test_transport_error(self):
        session = FakeHTTPSession(error=requests.ConnectionError('refused'))
        with pytest.raises(ChatClientError):
            ChatClient('k', session=session).complete([])

    def test_malformed_body(self):
        session = FakeHTTPSession(FakeHTTPResponse(200, {'choices': []}))
        with pytest.raises(ChatClientError):
            ChatClient('k', session=session).complete([])
