#!/usr/bin/env python3
"""
Deck Outline Backend
Flask endpoint that turns founder input into an investor pitch deck outline
"""

import os
import json
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Any

from flask import Flask, Blueprint, request, jsonify, current_app
from flask_cors import CORS
from dotenv import load_dotenv
from openai import OpenAI, APIConnectionError, APIStatusError
from werkzeug.exceptions import HTTPException, MethodNotAllowed

from outline_prompts import (
    FounderInput,
    build_system_prompt,
    build_user_prompt,
)

__version__ = "0.3.0"

# Load environment variables
load_dotenv()

# Configure logging
logging.basicConfig(
    level=os.getenv('LOG_LEVEL', 'INFO').upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

OUTLINE_PATH = '/api/generate-outline'
CORS_METHODS = ['GET', 'POST', 'OPTIONS']

# Bounded previews carried in 502 bodies
RAW_PREVIEW_LIMIT = 800
TEXT_PREVIEW_LIMIT = 400

TRUNCATION_REASON = 'max_output_tokens'


# Configuration
class Config:
    """Application configuration"""
    OPENAI_API_KEY = os.getenv('OPENAI_API_KEY')
    MODEL = os.getenv('MODEL', 'gpt-5-mini')
    MAX_OUTPUT_TOKENS = int(os.getenv('MAX_OUTPUT_TOKENS', '2000'))
    COMPACT_MAX_OUTPUT_TOKENS = int(os.getenv('COMPACT_MAX_OUTPUT_TOKENS', '1400'))
    ALLOWED_ORIGINS = os.getenv('ALLOWED_ORIGINS', '*')


# Errors
class OutlineError(Exception):
    """Request-level failure, rendered as a plain-text response"""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(OutlineError):
    status_code = 500


class BadRequestError(OutlineError):
    status_code = 400


class MissingFieldsError(BadRequestError):
    def __init__(self, missing: List[str]):
        super().__init__(f"Missing: {', '.join(missing)}")
        self.missing = missing


class UpstreamError(OutlineError):
    """Generation service unreachable or answered with an error status"""
    status_code = 502


class UpstreamShapeError(UpstreamError):
    """No generated text could be found in the upstream response"""


class ModelOutputError(UpstreamError):
    """Generated text is not valid JSON"""


def _preview(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def _response_payload(response: Any) -> Dict[str, Any]:
    """Normalize an SDK response object into a plain dict"""
    if isinstance(response, dict):
        return response

    payload = response.model_dump(mode='json') if hasattr(response, 'model_dump') else {}
    # output_text is a computed property on the SDK model, not a dumped field
    output_text = getattr(response, 'output_text', None)
    if isinstance(output_text, str) and output_text.strip() and not payload.get('output_text'):
        payload['output_text'] = output_text
    return payload


def _non_blank(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _chat_message_text(payload: Dict[str, Any]) -> Optional[str]:
    choices = payload.get('choices')
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    message = choices[0].get('message') or {}
    content = message.get('content') if isinstance(message, dict) else None
    if isinstance(content, list):
        parts = [str(part.get('text')) for part in content
                 if isinstance(part, dict) and part.get('text')]
        content = "\n".join(parts)
    return _non_blank(content)


def extract_output_text(payload: Dict[str, Any]) -> Optional[str]:
    """Find the generated text in an upstream response.

    Shapes are probed in a fixed order and the first non-blank match wins:
    the flat ``output_text`` field, text entries of the nested ``output``
    content list, a refusal entry (returned as a structured refusal JSON
    string), and finally a chat-style ``choices[0].message.content``.
    Returns None when no shape matches.
    """
    flat = _non_blank(payload.get('output_text'))
    if flat:
        return flat

    refusal = None
    for item in _as_list(payload.get('output')):
        if not isinstance(item, dict):
            continue
        for part in _as_list(item.get('content')):
            if not isinstance(part, dict):
                continue
            kind = part.get('type')
            if kind in ('output_text', 'text'):
                text = _non_blank(part.get('text'))
                if text:
                    return text
            elif kind == 'refusal' and refusal is None:
                refusal = _non_blank(part.get('refusal'))

    if refusal:
        return json.dumps({"error": "refusal", "detail": refusal})

    return _chat_message_text(payload)


def is_truncated(payload: Dict[str, Any]) -> bool:
    """True only when generation stopped on the output token budget"""
    details = payload.get('incomplete_details') or {}
    return (payload.get('status') == 'incomplete'
            and isinstance(details, dict)
            and details.get('reason') == TRUNCATION_REASON)


def _outline_body(outline: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(outline, dict):
        return None
    if isinstance(outline.get('meta'), dict):
        return outline
    deck = outline.get('deck')
    if isinstance(deck, dict) and isinstance(deck.get('meta'), dict):
        return deck
    return outline


def stamp_created_at(outline: Any) -> Optional[str]:
    """Overwrite meta.created_at with the server time, if there is a meta object"""
    body = _outline_body(outline)
    if body is None or not isinstance(body.get('meta'), dict):
        return None
    created_at = datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')
    body['meta']['created_at'] = created_at
    return created_at


def review_outline(outline: Any) -> List[str]:
    """List the ways an outline departs from the requested shape"""
    body = _outline_body(outline)
    if body is None:
        return ["outline is not a JSON object"]

    issues = []
    slides = body.get('slides')
    if not isinstance(slides, list):
        issues.append("slides missing")
        slides = []
    elif not 10 <= len(slides) <= 12:
        issues.append(f"{len(slides)} slides (expected 10-12)")

    for index, slide in enumerate(slides, start=1):
        if not isinstance(slide, dict):
            issues.append(f"slide {index} is not an object")
            continue
        bullets = slide.get('bullets')
        if not isinstance(bullets, list):
            issues.append(f"slide {index} bullets are not a list")
        elif not 3 <= len(bullets) <= 5:
            issues.append(f"slide {index} has {len(bullets)} bullets (expected 3-5)")
        proof = slide.get('proof_needed')
        if not isinstance(proof, list):
            issues.append(f"slide {index} proof_needed is not a list")
        elif not 2 <= len(proof) <= 4:
            issues.append(f"slide {index} has {len(proof)} proof_needed items (expected 2-4)")

    todos = body.get('proof_todos')
    if not isinstance(todos, list):
        issues.append("proof_todos is not a list")
    elif len(todos) > 8:
        issues.append(f"{len(todos)} proof_todos (expected at most 8)")
    return issues


# Outline Generator
class OutlineGenerator:
    """Calls the generation service and turns its reply into a deck outline"""

    def __init__(self, client: Any, model: str,
                 max_output_tokens: int = 2000,
                 compact_max_output_tokens: int = 1400):
        self.client = client
        self.model = model
        self.max_output_tokens = max_output_tokens
        self.compact_max_output_tokens = compact_max_output_tokens

    def request_outline(self, founder: FounderInput, compact: bool = False) -> Dict[str, Any]:
        """Issue one generation request and return the raw response as a dict"""
        budget = self.compact_max_output_tokens if compact else self.max_output_tokens
        logger.info(f"Requesting outline for '{founder.startup}' "
                    f"(model={self.model}, max_output_tokens={budget}, compact={compact})")

        try:
            response = self.client.responses.create(
                model=self.model,
                instructions=build_system_prompt(founder, compact=compact),
                input=build_user_prompt(founder),
                text={"format": {"type": "json_object"}},
                max_output_tokens=budget
            )
        except APIStatusError as e:
            logger.error(f"Upstream returned {e.status_code}: {e.message}")
            raise UpstreamError(f"Upstream error: {e.response.text}") from e
        except APIConnectionError as e:
            logger.error(f"Upstream unreachable: {e}")
            raise UpstreamError(f"Upstream error: {e}") from e

        payload = _response_payload(response)

        usage = payload.get('usage')
        if isinstance(usage, dict):
            logger.info(f"Token usage - Input: {usage.get('input_tokens')}, "
                        f"Output: {usage.get('output_tokens')}")
        return payload

    def generate(self, founder: FounderInput) -> Dict[str, Any]:
        """Full attempt, one compact retry on truncation, then decode and stamp"""
        payload = self.request_outline(founder)
        if is_truncated(payload):
            logger.warning(f"Output hit the {self.max_output_tokens} token budget, "
                           f"retrying in compact mode")
            payload = self.request_outline(founder, compact=True)

        text = extract_output_text(payload)
        if not text:
            raw = json.dumps(payload, default=str)
            raise UpstreamShapeError(f"Empty model output: {_preview(raw, RAW_PREVIEW_LIMIT)}")

        try:
            outline = json.loads(text)
        except json.JSONDecodeError as e:
            raise ModelOutputError(
                f"Model did not return valid JSON: {_preview(text, TEXT_PREVIEW_LIMIT)}"
            ) from e

        stamp_created_at(outline)

        issues = review_outline(outline)
        if issues:
            logger.warning(f"Outline departs from requested shape: {'; '.join(issues)}")

        return outline


def parse_founder_input(body: str) -> FounderInput:
    """Decode and validate a request body"""
    try:
        data = json.loads(body or "{}")
    except json.JSONDecodeError as e:
        raise BadRequestError("Bad JSON") from e

    if not isinstance(data, dict):
        raise BadRequestError("Bad JSON")

    missing = FounderInput.missing_fields(data)
    if missing:
        raise MissingFieldsError(missing)

    return FounderInput.from_dict(data)


def get_ai_client() -> Any:
    """OpenAI client for the current app, created on first use"""
    client = current_app.extensions.get('openai_client')
    if client is None:
        # SDK retries are off: the only retry is the compact one
        client = OpenAI(api_key=current_app.config['OPENAI_API_KEY'], max_retries=0)
        current_app.extensions['openai_client'] = client
    return client


def _text_response(message: str, status: int):
    return current_app.response_class(message, status=status, mimetype='text/plain')


# API Routes
outline_bp = Blueprint('outline', __name__)


@outline_bp.route(OUTLINE_PATH, methods=CORS_METHODS, provide_automatic_options=False)
def generate_outline():
    """Generate a pitch deck outline from founder input"""
    if request.method == 'OPTIONS':
        return '', 204

    # Flask adds HEAD to GET routes; only GET serves the health check
    if request.method == 'HEAD':
        raise MethodNotAllowed(valid_methods=CORS_METHODS)

    if request.method == 'GET':
        return health_check()

    if not current_app.config.get('OPENAI_API_KEY'):
        raise ConfigurationError("Missing OPENAI_API_KEY")

    founder = parse_founder_input(request.get_data(as_text=True))

    generator = OutlineGenerator(
        get_ai_client(),
        current_app.config['MODEL'],
        max_output_tokens=current_app.config['MAX_OUTPUT_TOKENS'],
        compact_max_output_tokens=current_app.config['COMPACT_MAX_OUTPUT_TOKENS']
    )
    outline = generator.generate(founder)

    response = jsonify(outline)
    response.headers['Cache-Control'] = 'no-store'
    return response


def health_check():
    """Health check, no upstream call"""
    return jsonify({
        "ok": True,
        "version": __version__,
        "model": current_app.config['MODEL'],
        "hasKey": bool(current_app.config.get('OPENAI_API_KEY'))
    })


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(OutlineError)
    def outline_error(error):
        """Handle request-level failures"""
        if error.status_code >= 500:
            logger.error(f"Outline request failed ({error.status_code}): {error.message}")
        else:
            logger.info(f"Rejected outline request: {error.message}")
        return _text_response(error.message, error.status_code)

    @app.errorhandler(405)
    def method_not_allowed(error):
        """Handle unsupported methods"""
        return _text_response("Method Not Allowed", 405)

    @app.errorhandler(Exception)
    def internal_error(error):
        """Handle unexpected errors"""
        if isinstance(error, HTTPException):
            return error
        logger.exception(f"Internal error: {error}")
        return _text_response(f"Server error: {error}", 500)


def create_app(config_overrides: Optional[Dict[str, Any]] = None) -> Flask:
    """Build the Flask app from Config plus optional overrides"""
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Keep the model's key order in the returned outline
    app.json.sort_keys = False
    app.json.ensure_ascii = False

    origins = [o.strip() for o in app.config['ALLOWED_ORIGINS'].split(',') if o.strip()]
    CORS(app,
         resources={r"/api/*": {"origins": origins or '*'}},
         methods=CORS_METHODS,
         allow_headers=['Content-Type'])

    app.register_blueprint(outline_bp)
    register_error_handlers(app)
    return app


app = create_app()

# Main execution
if __name__ == '__main__':
    port = int(os.getenv('PORT', 5001))
    debug = os.getenv('FLASK_ENV') == 'development'

    print(f"""
    Deck Outline Backend Starting...
    ================================
    Port: {port}
    Debug: {debug}
    Model: {Config.MODEL}
    API Key Configured: {bool(Config.OPENAI_API_KEY)}

    Endpoints:
    - OPTIONS {OUTLINE_PATH}    - CORS preflight
    - GET     {OUTLINE_PATH}    - Health check
    - POST    {OUTLINE_PATH}    - Generate deck outline

    To test:
    curl -X POST http://localhost:{port}{OUTLINE_PATH} \\
         -H "Content-Type: application/json" \\
         -d '{{"startup": "Foo", "one_liner": "X", "industry": "Y", "target_user": "Z", "problem": "P", "solution": "S"}}'
    """)

    app.run(host='0.0.0.0', port=port, debug=debug)
