"""Clients for the question-generation and fact-check services.

Both talk to an OpenAI-compatible chat-completions endpoint. Generation
failures surface as ``GenerationUnavailable`` so the question bank can fall
back to its own pool; fact-check failures degrade to a permissive verdict.
"""
import json
from typing import Dict, List, Optional

import requests
from flask import current_app

from trivia.errors import GenerationUnavailable


GENERATOR_SYSTEM_PROMPT = (
    "You are a trivia question generator. Generate interesting, accurate, "
    "and well-balanced trivia questions."
)
FACT_CHECK_SYSTEM_PROMPT = (
    "You are a fact-checker. Verify the accuracy of trivia questions and answers."
)


def _chat_completion(system_prompt: str, user_prompt: str, temperature: float) -> dict:
    cfg = current_app.config
    api_key = cfg.get('OPENAI_API_KEY')
    if not api_key:
        raise GenerationUnavailable('OpenAI API key not configured')
    try:
        response = requests.post(
            f"{cfg.get('OPENAI_API_BASE', 'https://api.openai.com/v1').rstrip('/')}/chat/completions",
            headers={
                'Content-Type': 'application/json',
                'Authorization': f'Bearer {api_key}',
            },
            json={
                'model': cfg.get('OPENAI_MODEL'),
                'messages': [
                    {'role': 'system', 'content': system_prompt},
                    {'role': 'user', 'content': user_prompt},
                ],
                'temperature': temperature,
                'response_format': {'type': 'json_object'},
            },
            timeout=int(cfg.get('AI_TIMEOUT_SEC', 30)),
        )
        response.raise_for_status()
        content = response.json()['choices'][0]['message']['content']
        return json.loads(content)
    except (requests.RequestException, KeyError, IndexError, TypeError, ValueError) as exc:
        raise GenerationUnavailable(f'AI request failed: {exc}') from exc


def _validate_candidate(raw: dict) -> Dict:
    if not isinstance(raw, dict):
        raise GenerationUnavailable('Malformed question candidate')
    options = raw.get('options') or []
    option_ids = [str(o.get('id')) for o in options if isinstance(o, dict)]
    if not raw.get('content') or len(option_ids) < 2 or len(option_ids) != len(options):
        raise GenerationUnavailable('Malformed question candidate')
    correct = str(raw.get('correctAnswer', ''))
    if correct not in option_ids:
        raise GenerationUnavailable('Correct answer is not one of the options')
    return {
        'content': str(raw['content']),
        'options': [{'id': str(o['id']), 'text': str(o.get('text', ''))} for o in options],
        'correct_answer': correct,
        'category': str(raw.get('category') or ''),
        'explanation': raw.get('explanation'),
    }


def generate_trivia_questions(categories: List[str], difficulty: str, count: int) -> List[Dict]:
    """Ask the generator for exactly ``count`` multiple-choice questions."""
    prompt = f"""Generate {count} trivia questions for the following categories: {", ".join(categories)}.
Difficulty level: {difficulty}
Respond with a JSON object {{"questions": [...]}} where each question has this structure:
{{
  "content": "The question text",
  "options": [
    {{"id": "a", "text": "Option A"}},
    {{"id": "b", "text": "Option B"}},
    {{"id": "c", "text": "Option C"}},
    {{"id": "d", "text": "Option D"}}
  ],
  "correctAnswer": "a",
  "category": "Category Name",
  "explanation": "Brief explanation of the correct answer"
}}"""
    payload = _chat_completion(GENERATOR_SYSTEM_PROMPT, prompt, temperature=0.8)
    raw_questions = payload.get('questions') if isinstance(payload, dict) else payload
    if not isinstance(raw_questions, list) or len(raw_questions) < count:
        raise GenerationUnavailable('Generator returned too few questions')
    return [_validate_candidate(q) for q in raw_questions[:count]]


def fact_check_question(question: str, answer: str, explanation: Optional[str] = None) -> Dict:
    """Return ``{is_accurate, confidence, details, suggestions}`` for one question."""
    if not current_app.config.get('OPENAI_API_KEY'):
        return {'is_accurate': True, 'confidence': 1.0, 'details': 'Fact check skipped: no API key', 'suggestions': None}

    prompt = f"""Please fact-check this trivia question and answer:
Question: {question}
Answer: {answer}
{f"Explanation: {explanation}" if explanation else ""}

Provide your assessment in the following JSON format:
{{
  "isAccurate": true/false,
  "confidence": 0.0-1.0,
  "details": "Your fact-checking notes",
  "suggestions": "Any corrections if needed"
}}"""
    try:
        verdict = _chat_completion(FACT_CHECK_SYSTEM_PROMPT, prompt, temperature=0.2)
        return {
            'is_accurate': bool(verdict.get('isAccurate')),
            'confidence': float(verdict.get('confidence', 0.0)),
            'details': str(verdict.get('details') or ''),
            'suggestions': verdict.get('suggestions'),
        }
    except (GenerationUnavailable, AttributeError, TypeError, ValueError) as exc:
        current_app.logger.warning(f"[fact-check-error] {exc}")
        return {'is_accurate': True, 'confidence': 0.8, 'details': 'Fact check unavailable', 'suggestions': None}
