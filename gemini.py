"""Gemini-backed metadata suggestion from raw article text.

The result is a best-effort partial record (camelCase keys, same shape the web
client sends). Anything that goes wrong surfaces as SuggestionError; callers keep
their defaults and ask the user to fill the form by hand.
"""
import os, re, json, logging

import google.generativeai as genai

logger = logging.getLogger(__name__)

DEFAULT_GEMINI_MODEL = 'gemini-2.5-flash'
MAX_PROMPT_CHARS = 15000
FAILURE_MESSAGE = 'AI extraction failed, fill in manually'
AUTHOR_FIELDS = ('name', 'affiliation', 'email', 'orcid', 'country')


class SuggestionError(Exception):
    pass


RESPONSE_SCHEMA = {
    'type': 'object',
    'properties': {
        'title': {'type': 'string', 'description': 'El título principal del artículo en su idioma original (español o portugués).'},
        'titleEn': {'type': 'string', 'description': 'La traducción del título al inglés. Si no se encuentra, dejar vacío.'},
        'abstract': {'type': 'string', 'description': 'El resumen o abstract completo en el idioma original.'},
        'abstractEn': {'type': 'string', 'description': 'La traducción del resumen al inglés. Si no se encuentra, dejar vacío.'},
        'keywords': {'type': 'string', 'description': 'Palabras clave en el idioma original, separadas por comas.'},
        'keywordsEn': {'type': 'string', 'description': 'Palabras clave traducidas al inglés, separadas por comas. Si no se encuentran, dejar vacío.'},
        'authors': {
            'type': 'array',
            'description': 'Todos los autores del artículo, en orden.',
            'items': {
                'type': 'object',
                'properties': {
                    'name': {'type': 'string', 'description': 'Nombre completo del autor.'},
                    'affiliation': {'type': 'string', 'description': 'Afiliación institucional (universidad, centro de investigación, etc.).'},
                    'country': {'type': 'string', 'description': 'País de la afiliación. Si no se encuentra, dejar vacío.'},
                    'email': {'type': 'string', 'description': 'Correo electrónico. Si no se encuentra, dejar vacío.'},
                    'orcid': {'type': 'string', 'description': 'Identificador ORCID, si está disponible. Si no, dejar vacío.'},
                },
                'required': ['name', 'affiliation', 'country'],
            },
        },
    },
    'required': ['title', 'abstract', 'keywords', 'authors'],
}

PROMPT = """Analiza el siguiente texto de un artículo académico y extrae los metadatos solicitados.
El texto puede estar en español o portugués. Extrae los títulos, resúmenes y palabras clave tanto en el idioma original como en inglés si están disponibles.
Para cada autor, extrae su nombre, afiliación y el país de la afiliación.
Responde únicamente con el objeto JSON que se ajuste al esquema proporcionado.

TEXTO DEL ARTÍCULO:
---
{text}
---
"""


def _api_key():
    return os.getenv('GEMINI_API_KEY') or os.getenv('GOOGLE_API_KEY')


def _safe_json(raw):
    """Parse the model's JSON, tolerating markdown fences around it."""
    txt = (raw or '').strip()
    txt = re.sub(r'^```(?:json)?\s*|\s*```$', '', txt)
    return json.loads(txt)


def normalize_authors(authors):
    if not isinstance(authors, list) or not authors:
        return [dict.fromkeys(AUTHOR_FIELDS, '')]
    out = []
    for a in authors:
        a = a if isinstance(a, dict) else {}
        out.append({k: a.get(k) if isinstance(a.get(k), str) else '' for k in AUTHOR_FIELDS})
    return out


def suggest_metadata(text, api_key=None, model_name=None):
    api_key = api_key or _api_key()
    if not api_key:
        raise SuggestionError(f'{FAILURE_MESSAGE} (GEMINI_API_KEY is not set)')
    model_name = model_name or os.getenv('GEMINI_MODEL') or DEFAULT_GEMINI_MODEL

    try:
        genai.configure(api_key=api_key)
        model = genai.GenerativeModel(model_name, generation_config={
            'response_mime_type': 'application/json',
            'response_schema': RESPONSE_SCHEMA,
        })
        resp = model.generate_content(PROMPT.format(text=(text or '')[:MAX_PROMPT_CHARS]))
        data = _safe_json(resp.text)
    except Exception as e:
        logger.warning('Gemini metadata extraction failed: %r', e)
        raise SuggestionError(FAILURE_MESSAGE) from e

    if not isinstance(data, dict):
        raise SuggestionError(FAILURE_MESSAGE)
    data['authors'] = normalize_authors(data.get('authors'))
    logger.info('Gemini suggested %d fields, %d authors', len(data) - 1, len(data['authors']))
    return data
