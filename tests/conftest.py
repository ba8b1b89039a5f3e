import json

import pytest

from deck_outline_backend import create_app

FOUNDER = {
    "startup": "Foo",
    "one_liner": "X",
    "industry": "Y",
    "target_user": "Z",
    "problem": "P",
    "solution": "S",
}


class FakeResponses:
    """Stands in for client.responses; replays queued replies in order"""

    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeOpenAI:
    def __init__(self, *replies):
        self.responses = FakeResponses(replies)


def make_outline(slide_count=10, created_at="2020-01-01T00:00:00Z"):
    slides = []
    for number in range(1, slide_count + 1):
        slides.append({
            "id": number,
            "title": f"Slide {number}",
            "purpose": "Why should an investor care?",
            "bullets": ["First point", "Second point", "Third point"],
            "visual": "cohort chart",
            "proof_needed": ["Signed LOIs", "Pilot retention"],
        })
    return {
        "meta": {
            "startup": "Foo",
            "industry": "Y",
            "stage": "seed",
            "tone": "crisp",
            "prompt_version": "v1",
            "created_at": created_at,
        },
        "slides": slides,
        "proof_todos": ["Supply monthly active users"],
        "warnings": ["No traction data supplied"],
    }


def completed(text):
    return {"status": "completed", "output_text": text}


def truncated():
    return {
        "status": "incomplete",
        "incomplete_details": {"reason": "max_output_tokens"},
        "output_text": '{"meta": {"startup": "Fo',
    }


@pytest.fixture
def outline():
    return make_outline()


@pytest.fixture
def make_app():
    def _make(*replies, **overrides):
        config = {
            "TESTING": True,
            "OPENAI_API_KEY": "sk-test",
            "MODEL": "gpt-test",
            "MAX_OUTPUT_TOKENS": 2000,
            "COMPACT_MAX_OUTPUT_TOKENS": 1400,
            "ALLOWED_ORIGINS": "*",
        }
        config.update(overrides)
        app = create_app(config)
        fake = FakeOpenAI(*replies)
        app.extensions["openai_client"] = fake
        return app, fake
    return _make


@pytest.fixture
def post_outline():
    def _post(app, body):
        data = body if isinstance(body, str) else json.dumps(body)
        return app.test_client().post(
            "/api/generate-outline",
            data=data,
            content_type="application/json",
        )
    return _post
