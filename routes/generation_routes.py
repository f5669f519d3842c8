import os

import google.generativeai as genai
from flask import Blueprint, current_app, jsonify, request

from attachments import filter_attachments, from_payload
from auth import token_optional
from errors import GenerationError, ValidationError
from extensions import limiter, uses_own_api_key
from settings_store import resolve_instruction

generation_bp = Blueprint('generation_bp', __name__)


def generation_limit():
    return current_app.config['GENERATION_RATE_LIMIT']


def configure_gemini_for_request():
    user_api_key = request.headers.get('X-User-API-Key')
    api_key_to_use = user_api_key if user_api_key else os.getenv('GEMINI_API_KEY')
    if not api_key_to_use:
        raise GenerationError("AI service not configured")
    genai.configure(api_key=api_key_to_use)


def _generator():
    return current_app.extensions['edugame']['generator']


def _request_attachments(data):
    decoded, warnings = from_payload(data.get('attachments'))
    accepted, rejected = filter_attachments(decoded)
    return accepted, warnings + rejected


def _custom_instruction(data, kind):
    """A client-supplied instruction is honoured only if it passes validation."""
    instruction = data.get('customInstruction')
    if not instruction:
        return None
    key = 'mainPrompt' if kind == 'main' else 'refinementPrompt'
    return resolve_instruction({'useCustomPrompts': True, key: instruction}, kind)


@generation_bp.route('/generate', methods=['POST'])
@token_optional
@limiter.limit(generation_limit, exempt_when=uses_own_api_key)
def generate_route(current_user_id):
    data = request.get_json(silent=True) or {}
    attachments, warnings = _request_attachments(data)
    configure_gemini_for_request()
    html = _generator().generate(
        data.get('prompt', ''), attachments, data.get('mode', 'fast'), _custom_instruction(data, 'main'))
    current_app.logger.info(f"Generated game for user {current_user_id or 'Guest'}")
    return jsonify({"htmlContent": html, "warnings": warnings}), 200


@generation_bp.route('/refine', methods=['POST'])
@token_optional
@limiter.limit(generation_limit, exempt_when=uses_own_api_key)
def refine_route(current_user_id):
    data = request.get_json(silent=True) or {}
    attachments, warnings = _request_attachments(data)
    configure_gemini_for_request()
    html = _generator().refine(
        data.get('instruction', ''), data.get('htmlContent', ''), attachments,
        data.get('mode', 'fast'), _custom_instruction(data, 'refinement'))
    return jsonify({"htmlContent": html, "warnings": warnings}), 200


@generation_bp.route('/metadata', methods=['POST'])
@token_optional
@limiter.limit(generation_limit, exempt_when=uses_own_api_key)
def metadata_route(current_user_id):
    prompt = ((request.get_json(silent=True) or {}).get('prompt') or '').strip()
    if not prompt:
        raise ValidationError("Prompt is required", field='prompt')
    configure_gemini_for_request()
    generator = _generator()
    return jsonify({"title": generator.title(prompt), "description": generator.describe(prompt)}), 200


@generation_bp.route('/ideas', methods=['POST'])
@token_optional
@limiter.limit(generation_limit, exempt_when=uses_own_api_key)
def ideas_route(current_user_id):
    data = request.get_json(silent=True) or {}
    try:
        grade = int(data.get('grade'))
    except (TypeError, ValueError):
        raise ValidationError("Grade must be a number between 1 and 13.", field='grade')
    configure_gemini_for_request()
    ideas = _generator().ideas(data.get('subject'), grade, data.get('keywords'))
    return jsonify({"ideas": ideas}), 200
